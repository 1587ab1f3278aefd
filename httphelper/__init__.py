# httphelper/__init__.py
"""
Fluent HTTP transfer helper.

    from httphelper import TransferSession

    with TransferSession() as session:
        body = session.set_url("https://example.com/").set_return(True).execute()
"""

from .exceptions import ConfigurationError
from .transfer import (
    ErrorCode,
    IpResolve,
    Option,
    Param,
    ProxyType,
    TransferSession,
    parse_cookie,
)

__all__ = [
    "TransferSession",
    "ConfigurationError",
    "ErrorCode",
    "Option",
    "Param",
    "ProxyType",
    "IpResolve",
    "parse_cookie",
]

__version__ = "0.1.0"
