from .fhirsearch import FHIRSearch  # noqa
from .errors import (  # noqa
    FHIRSearchError,
    NotSupportedError,
    InvalidParameterError,
    HandlerRegistrationError,
)
