"""Core (UI-agnostic) explorer logic.

This package contains:
- filter configuration, active filter state and the record predicate
- query-string building for server mode and local predicates for client mode
- the query cache / fetch orchestration (list + detail)
- page composition (filters -> search -> brush selection -> paging)
- map geometry, CSV export and detail formatting helpers
"""
