"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class RelayOutcome(StrEnum):
    BAD_REQUEST = "bad_request"
    CONFIG_ERROR = "config_error"
    RELAY_FAILURE = "relay_failure"
    SUCCESS = "success"
    INTERNAL_ERROR = "internal_error"
