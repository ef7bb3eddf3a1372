"""Daily volume cap policies used by the TWAP sell strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable

from utils.config_validator import ConfigValidationError

VOLUME_FILTER_PREFIX = "volume"
SUPPORTED_WINDOWS = {"daily"}
SUPPORTED_ACTIONS = {"sell", "buy"}
SUPPORTED_UNITS = {"base", "quote"}
# caps are enforced exactly; other modes are rejected at parse time
SUPPORTED_MODES = {"exact"}


class CapResolutionError(RuntimeError):
    """Raised when a volume filter cannot resolve its base-asset cap."""


@dataclass(frozen=True)
class VolumeFilter:
    """A single day's sell-volume cap.

    ``cap_resolver`` lets a cap depend on live data; when set it is called on
    every resolution and any exception it raises becomes a CapResolutionError.
    """

    config_value: str
    action: str
    base_asset_cap: Decimal | None = None
    cap_resolver: Callable[[], Decimal] | None = field(default=None, compare=False)

    def is_selling_base(self) -> bool:
        if self.action != "sell":
            return False
        return self.base_asset_cap is not None or self.cap_resolver is not None

    def base_asset_cap_in_base_units(self) -> Decimal:
        if self.cap_resolver is not None:
            try:
                cap = Decimal(str(self.cap_resolver()))
            except Exception as exc:
                raise CapResolutionError(
                    f"could not resolve base asset cap for '{self.config_value}': {exc}"
                ) from exc
        elif self.base_asset_cap is None:
            raise CapResolutionError(
                f"volume filter '{self.config_value}' has no base asset cap"
            )
        else:
            cap = self.base_asset_cap
        if not cap.is_finite() or cap < 0:
            raise CapResolutionError(
                f"volume filter '{self.config_value}' resolved an invalid cap: {cap}"
            )
        return cap

    def __str__(self) -> str:
        return f"VolumeFilter[{self.config_value}]"


def parse_volume_filter(config_value: str) -> VolumeFilter:
    """Parse ``volume/daily/sell/base/3500.0/exact`` style descriptors."""
    if not isinstance(config_value, str) or not config_value.strip():
        raise ConfigValidationError("volume filter descriptor must be a non-empty string")
    raw = config_value.strip()
    parts = raw.split("/")
    if len(parts) != 6:
        raise ConfigValidationError(
            f"volume filter '{raw}' must have 6 '/' separated parts, "
            "e.g. volume/daily/sell/base/1000/exact"
        )
    prefix, window_spec, action, unit, amount_text, mode = (p.strip() for p in parts)
    if prefix != VOLUME_FILTER_PREFIX:
        raise ConfigValidationError(
            f"volume filter '{raw}' must start with '{VOLUME_FILTER_PREFIX}/'"
        )

    window, _, param_text = window_spec.partition(":")
    if window not in SUPPORTED_WINDOWS:
        raise ConfigValidationError(
            f"volume filter '{raw}' has unsupported window '{window}'"
        )
    if param_text:
        raise ConfigValidationError(
            f"volume filter '{raw}' has window parameters '{param_text}'; "
            "daily caps count every market of the pair and take none"
        )

    action = action.lower()
    if action not in SUPPORTED_ACTIONS:
        raise ConfigValidationError(
            f"volume filter '{raw}' has unsupported action '{action}'"
        )
    unit = unit.lower()
    if unit not in SUPPORTED_UNITS:
        raise ConfigValidationError(f"volume filter '{raw}' has unsupported unit '{unit}'")
    mode = mode.lower()
    if mode not in SUPPORTED_MODES:
        raise ConfigValidationError(
            f"volume filter '{raw}' has unsupported mode '{mode}', expected 'exact'"
        )

    try:
        amount = Decimal(amount_text)
    except InvalidOperation as exc:
        raise ConfigValidationError(
            f"volume filter '{raw}' has a non-numeric amount '{amount_text}'"
        ) from exc
    if not amount.is_finite() or amount < 0:
        raise ConfigValidationError(
            f"volume filter '{raw}' amount must be a non-negative number"
        )

    return VolumeFilter(
        config_value=raw,
        action=action,
        base_asset_cap=amount if unit == "base" else None,
    )
