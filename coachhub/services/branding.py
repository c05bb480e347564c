import logging
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from coachhub.core.config import settings
from coachhub.schemas.tenant import Tenant, BrandingResponse

logger = logging.getLogger(__name__)

# Theme variables that carry the primary brand colour
PRIMARY_VARS = ("--primary", "--ring", "--accent")
LOGO_VAR = "--tenant-logo"

# Neon green, the stock theme when no tenant is resolved
DEFAULT_PRIMARY_HSL = "67 100% 50%"


def _round(x: float) -> int:
    # Half-up rounding, the way CSS tooling reports HSL components
    return int(x + 0.5)


def hex_to_hsl(hex_color: str) -> Optional[Dict[str, int]]:
    """
    Converts '#rgb' or '#rrggbb' into {'h': deg, 's': pct, 'l': pct}.
    Returns None for anything else.
    """
    if not hex_color or not hex_color.startswith("#"):
        return None
    try:
        if len(hex_color) == 4:
            r, g, b = (int(c * 2, 16) for c in hex_color[1:4])
        elif len(hex_color) == 7:
            r, g, b = (int(hex_color[i:i + 2], 16) for i in (1, 3, 5))
        else:
            return None
    except ValueError:
        return None

    r, g, b = r / 255, g / 255, b / 255
    hi, lo = max(r, g, b), min(r, g, b)
    h = s = 0.0
    l = (hi + lo) / 2

    if hi != lo:
        d = hi - lo
        s = d / (2 - hi - lo) if l > 0.5 else d / (hi + lo)
        if hi == r:
            h = (g - b) / d + (6 if g < b else 0)
        elif hi == g:
            h = (b - r) / d + 2
        else:
            h = (r - g) / d + 4
        h /= 6

    return {"h": _round(h * 360), "s": _round(s * 100), "l": _round(l * 100)}


def _channels(hex_color: str):
    color = hex_color.lstrip("#")
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)


def luminance(hex_color: str) -> float:
    """Relative luminance (0..1) of a '#rrggbb' colour."""
    r, g, b = _channels(hex_color)
    return 0.2126 * r / 255 + 0.7152 * g / 255 + 0.0722 * b / 255


def alpha_color(hex_color: str, alpha: float) -> str:
    r, g, b = _channels(hex_color)
    return f"rgba({r}, {g}, {b}, {alpha})"


def on_primary_color(primary_hex: str) -> str:
    """Text colour to use on top of the primary colour."""
    if luminance(primary_hex) < 0.3:
        return "#FFFFFF"
    return primary_hex


def visible_color(hex_color: str) -> str:
    """Lightens colours too dark to read against the app's dark background."""
    if luminance(hex_color) >= 0.4:
        return hex_color
    boosted = [_round(c + (255 - c) * 0.5) for c in _channels(hex_color)]
    return "#" + "".join(f"{c:02x}" for c in boosted)


def badge_style(primary_hex: str) -> Dict[str, str]:
    color = visible_color(primary_hex)
    return {
        "background": alpha_color(color, 0.12),
        "text": color,
        "border": alpha_color(color, 0.3),
    }


def effective_colors(tenant: Optional[Tenant]) -> Dict[str, str]:
    return {
        "primary": (tenant and tenant.primary_color) or settings.default_primary_color,
        "secondary": (tenant and tenant.secondary_color) or settings.default_secondary_color,
    }


def terminology(tenant: Optional[Tenant], key: str, default: Optional[str] = None) -> str:
    """Tenant-specific wording for a UI term, e.g. 'client' -> 'athlete'."""
    if tenant and tenant.terminology and tenant.terminology.get(key):
        return tenant.terminology[key]
    return default if default is not None else key


class BrandingState(BaseModel):
    """What the UI paints with. Replaced wholesale on apply/reset, never edited."""
    primary_color: str
    secondary_color: str
    title: str
    theme: Dict[str, str] = {}
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    tenant_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def default(cls) -> "BrandingState":
        return cls(
            primary_color=settings.default_primary_color,
            secondary_color=settings.default_secondary_color,
            title=settings.brand_title,
            theme={var: DEFAULT_PRIMARY_HSL for var in PRIMARY_VARS},
        )

    @classmethod
    def for_tenant(cls, tenant: Tenant) -> "BrandingState":
        colors = effective_colors(tenant)
        theme = {var: DEFAULT_PRIMARY_HSL for var in PRIMARY_VARS}

        primary = settings.default_primary_color
        hsl = hex_to_hsl(tenant.primary_color) if tenant.primary_color else None
        if hsl:
            primary = tenant.primary_color
            value = f"{hsl['h']} {hsl['s']}% {hsl['l']}%"
            theme.update({var: value for var in PRIMARY_VARS})
        elif tenant.primary_color:
            logger.warning(f"[Branding] Unparsable primary color {tenant.primary_color!r} for tenant {tenant.id}")

        if tenant.logo_url:
            theme[LOGO_VAR] = f"url({tenant.logo_url})"

        return cls(
            primary_color=primary,
            secondary_color=colors["secondary"],
            title=f"{tenant.business_name} | {settings.brand_title}",
            theme=theme,
            logo_url=tenant.logo_url,
            favicon_url=tenant.favicon_url or tenant.logo_url,
            tenant_id=tenant.id,
        )

    def to_response(self) -> BrandingResponse:
        return BrandingResponse.model_validate(self.model_dump(exclude={"tenant_id"}))


Listener = Callable[[BrandingState], None]


class BrandingController:
    """
    Owns the process-wide BrandingState.
    Only apply() and reset() write it; everything else reads `state`
    or subscribes for updates.
    """
    def __init__(self):
        self._state = BrandingState.default()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> BrandingState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def apply(self, tenant: Tenant):
        logger.info(f"[Branding] Injecting branding for {tenant.business_name} ({tenant.primary_color})")
        self._publish(BrandingState.for_tenant(tenant))

    def reset(self):
        logger.info("[Branding] Resetting branding to default")
        self._publish(BrandingState.default())

    def _publish(self, state: BrandingState):
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"[Branding] Listener failed: {e}")

# Singleton instance
branding = BrandingController()
