"""Public SDK layer for py_household.

Exports:
- bootstrap: init_app/AppContext for one-import startup
- use_cases: thin async facades over the ledger use cases
- errors: public exceptions and map_exception()
- json: JSON presenter helpers (to_dict, to_json)
- uow: store engine and UoW factory builders
"""

__all__ = [
    "bootstrap",
    "use_cases",
    "errors",
    "json",
    "uow",
]
