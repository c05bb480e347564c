import itertools
import logging
import re
from typing import Any, Callable, Optional

from supabase import AsyncClient

from coachhub.core.config import settings
from coachhub.schemas.profile import Profile
from coachhub.schemas.tenant import Tenant
from coachhub.services.branding import BrandingController, terminology

logger = logging.getLogger(__name__)

IPV4_RE = re.compile(r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$")
LOCAL_HOSTS = {"localhost", "127.0.0.1"}


def normalize_hostname(hostname: Optional[str]) -> str:
    """Lowercases and strips any port and trailing dot."""
    if not hostname:
        return ""
    host = hostname.strip().lower().rstrip(".")
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host


def is_local_host(hostname: str) -> bool:
    return hostname in LOCAL_HOSTS or bool(IPV4_RE.match(hostname))


class TenantResolver:
    """
    Maps (hostname, identity) to a single Tenant.

    Priority:
    1. The tenant bound to the authenticated identity.
    2. A tenant whose custom_domain equals the hostname.
    3. The first label of a 3+ label hostname as a subdomain.
    4. Bare hosts (localhost, IPs) resolve to nothing unless the dev
       override is enabled and a subdomain was passed for it.
    """
    def __init__(self, client: AsyncClient):
        self.client = client

    async def resolve(
        self,
        hostname: Optional[str],
        identity: Optional[Profile] = None,
        dev_override: Optional[str] = None,
    ) -> Optional[Tenant]:
        if identity and identity.tenant_id:
            tenant = await self.fetch_by_id(identity.tenant_id)
            if tenant:
                return tenant
            logger.warning(f"[Tenant] Identity {identity.id} bound to missing tenant {identity.tenant_id}, falling back to hostname")

        host = normalize_hostname(hostname)

        if not host or is_local_host(host):
            if dev_override and settings.allow_tenant_override:
                logger.info(f"[Tenant] Using development override subdomain '{dev_override}'")
                return await self.fetch_by_subdomain(dev_override)
            return None

        tenant = await self._fetch_one("custom_domain", host)
        if tenant:
            return tenant

        labels = host.split(".")
        if len(labels) >= 3:
            return await self.fetch_by_subdomain(labels[0])

        return None

    async def fetch_by_id(self, tenant_id: str) -> Optional[Tenant]:
        return await self._fetch_one("id", tenant_id)

    async def fetch_by_subdomain(self, subdomain: str) -> Optional[Tenant]:
        tenant = await self._fetch_one("subdomain", subdomain.lower())
        if not tenant:
            logger.warning(f"[Tenant] Tenant with subdomain '{subdomain}' not found. Using default branding.")
        return tenant

    async def _fetch_one(self, column: str, value: Any) -> Optional[Tenant]:
        res = await self.client.table("tenants").select("*").eq(column, value).limit(1).execute()
        if not res.data:
            return None
        return Tenant.model_validate(res.data[0])


class TenantController:
    """
    Publishes the current tenant and keeps branding in sync with it.

    refresh() may be re-triggered while a previous call is still awaiting
    the store. Every call takes a sequence number before its first await and
    only the latest issued call may write state (last-issued-wins).
    """
    def __init__(
        self,
        resolver: TenantResolver,
        branding: BrandingController,
        suspended: Callable[[], bool] = lambda: False,
    ):
        self.resolver = resolver
        self.branding = branding
        self._suspended = suspended
        self._seq = itertools.count(1)
        self._latest = 0
        self._tenant: Optional[Tenant] = None
        self.loading = False

    @property
    def tenant(self) -> Optional[Tenant]:
        return self._tenant

    def _is_current(self, seq: int) -> bool:
        return seq == self._latest and not self._suspended()

    async def refresh(
        self,
        hostname: Optional[str],
        identity: Optional[Profile] = None,
        dev_override: Optional[str] = None,
    ) -> Optional[Tenant]:
        seq = next(self._seq)
        self._latest = seq
        self.loading = True

        try:
            tenant = await self.resolver.resolve(hostname, identity, dev_override)
        except Exception as e:
            if not self._is_current(seq):
                logger.debug(f"[Tenant] Dropping failed stale resolution #{seq}: {e}")
                return self._tenant
            logger.error(f"[Tenant] Failed to resolve tenant for {hostname!r}: {e}")
            tenant = None

        if not self._is_current(seq):
            logger.debug(f"[Tenant] Discarding stale resolution #{seq} (latest is #{self._latest})")
            return self._tenant

        self._tenant = tenant
        self.loading = False
        if tenant:
            logger.info(f"[Tenant] Resolved {tenant.business_name} ({tenant.subdomain})")
            self.branding.apply(tenant)
        else:
            logger.info("[Tenant] No tenant found. Resetting to default branding.")
            self.branding.reset()
        return tenant

    def clear(self):
        """Forgets the tenant and invalidates any resolution still in flight."""
        self._latest = next(self._seq)
        self._tenant = None
        self.loading = False

    def t(self, key: str, default: Optional[str] = None) -> str:
        return terminology(self._tenant, key, default)
