"""Capabilities available to sideloaded code."""

from .network import NetworkFetchCapability
from .cast import Cast
from .api import HostAPI, Translate, make_host_api

__all__ = [
    "NetworkFetchCapability",
    "Cast",
    "HostAPI",
    "Translate",
    "make_host_api",
]
