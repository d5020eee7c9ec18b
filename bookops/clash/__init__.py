"""Clash detection and resolution for BookOps builds.

A clash is an account whose effective owner (proposed owner if set, else
current owner) disagrees across two or more builds, or whose builds are in a
mixed proposed/unproposed state.

Public API:
- collector.collect_assignments  : fetch every build's accounts concurrently
- classifier.detect_clashes      : pure classification and ordering
- resolver.resolve_clash         : apply one owner across all member builds
- service.detect_for_caller      : region-scoped detection pass for a caller
"""
