from .parameters import (  # noqa
    AndListParam,
    Chain,
    DateParam,
    DateRangeParam,
    HandlerKey,
    HandlerKind,
    Include,
    OrListParam,
    ParamPrefix,
    QuantityParam,
    ReferenceParam,
    SearchParameterMap,
    SortOrder,
    SortSpec,
    StringParam,
    TokenParam,
)
