from nowbench.query.builder import (
    RequestDescriptor,
    RequestStyle,
    build_composite_graphql_request,
    build_graphql_request,
    build_table_request,
    query_complexity,
    validate_composite_scenario,
)

__all__ = [
    "RequestDescriptor",
    "RequestStyle",
    "build_table_request",
    "build_graphql_request",
    "build_composite_graphql_request",
    "query_complexity",
    "validate_composite_scenario",
]
