"""Benchmark comparison engine.

Modules:
    - packages: package discovery (`go list`)
    - compiler: reproducible test binaries and content hashes
    - lister: benchmark enumeration
    - matcher: cross-revision matching and the execution plan
    - runner: single benchmark execution with profiling
    - scheduler: phase 1 (parallel compile/list) and phase 2 (sequential runs)
    - compare: one full comparison run
"""
