import asyncio

import pytest

from coachhub.core.config import Settings, settings
from coachhub.schemas.profile import Profile
from coachhub.schemas.tenant import Tenant
from coachhub.services.branding import BrandingState
from coachhub.services.tenant_resolver import TenantController, TenantResolver, normalize_hostname

from tests.conftest import TENANT_ONE, TENANT_TWO


class GatedResolver:
    """Resolver whose lookups finish only when the test releases them."""

    def __init__(self, results):
        self.results = results
        self.gates = {host: asyncio.Event() for host in results}

    async def resolve(self, hostname, identity=None, dev_override=None):
        await self.gates[hostname].wait()
        result = self.results[hostname]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.asyncio
async def test_subdomain_resolves_tenant(db):
    tenant = await TenantResolver(db).resolve("coach1.example.com")
    assert tenant.id == "tenant-1"
    assert tenant.business_name == "Coach One"


@pytest.mark.asyncio
async def test_two_label_host_resolves_nothing(db):
    assert await TenantResolver(db).resolve("example.com") is None


@pytest.mark.asyncio
async def test_custom_domain_matches_before_subdomain(db):
    resolver = TenantResolver(db)
    assert (await resolver.resolve("coachone.fit")).id == "tenant-1"
    assert (await resolver.resolve("CoachOne.FIT:443")).id == "tenant-1"


@pytest.mark.asyncio
async def test_unknown_subdomain_is_none(db):
    assert await TenantResolver(db).resolve("nobody.example.com") is None


@pytest.mark.asyncio
async def test_bound_identity_wins_over_hostname(db):
    identity = Profile(id="client-1", tenant_id="tenant-2", role="client")
    tenant = await TenantResolver(db).resolve("coach1.example.com", identity)
    assert tenant.id == "tenant-2"


@pytest.mark.asyncio
async def test_identity_with_missing_tenant_falls_back_to_hostname(db):
    identity = Profile(id="client-1", tenant_id="deleted-tenant", role="client")
    tenant = await TenantResolver(db).resolve("coach1.example.com", identity)
    assert tenant.id == "tenant-1"


@pytest.mark.asyncio
async def test_unbound_identity_uses_hostname(db):
    identity = Profile(id="client-1", tenant_id=None, role="client")
    tenant = await TenantResolver(db).resolve("coach2.example.com", identity)
    assert tenant.id == "tenant-2"


@pytest.mark.asyncio
async def test_local_hosts_ignore_override_unless_enabled(db, monkeypatch):
    monkeypatch.setattr(settings, "allow_tenant_override", False)
    resolver = TenantResolver(db)
    assert await resolver.resolve("localhost:5173") is None
    assert await resolver.resolve("localhost", dev_override="coach1") is None


@pytest.mark.asyncio
async def test_dev_override_on_local_hosts(db, monkeypatch):
    monkeypatch.setattr(settings, "allow_tenant_override", True)
    resolver = TenantResolver(db)
    assert (await resolver.resolve("localhost", dev_override="coach1")).id == "tenant-1"
    assert (await resolver.resolve("192.168.0.20", dev_override="COACH2")).id == "tenant-2"
    # Never consulted for real hostnames
    assert await resolver.resolve("example.com", dev_override="coach1") is None


def test_production_disables_override():
    prod = Settings(environment="production", allow_tenant_override=True)
    assert prod.allow_tenant_override is False


def test_normalize_hostname():
    assert normalize_hostname("Coach1.Example.com.:8080") == "coach1.example.com"
    assert normalize_hostname(None) == ""


@pytest.mark.asyncio
async def test_controller_applies_branding(db, branding):
    controller = TenantController(TenantResolver(db), branding)
    tenant = await controller.refresh("coach1.example.com")

    assert tenant.id == "tenant-1"
    assert controller.tenant.id == "tenant-1"
    assert branding.state.tenant_id == "tenant-1"
    assert branding.state.title == f"Coach One | {settings.brand_title}"
    assert controller.t("client", "client") == "athlete"
    assert controller.t("workout", "training") == "training"


@pytest.mark.asyncio
async def test_controller_resets_branding_when_nothing_resolves(db, branding):
    controller = TenantController(TenantResolver(db), branding)
    await controller.refresh("coach1.example.com")
    await controller.refresh("example.com")

    assert controller.tenant is None
    assert branding.state == BrandingState.default()


@pytest.mark.asyncio
async def test_resolution_error_fails_open(db, branding):
    db.fail("tenants", "select")
    controller = TenantController(TenantResolver(db), branding)

    assert await controller.refresh("coach1.example.com") is None
    assert branding.state == BrandingState.default()


@pytest.mark.asyncio
async def test_last_issued_wins_when_older_request_completes_last(branding):
    one, two = Tenant.model_validate(TENANT_ONE), Tenant.model_validate(TENANT_TWO)
    resolver = GatedResolver({"a.example.com": one, "b.example.com": two})
    controller = TenantController(resolver, branding)
    published = []
    branding.subscribe(lambda state: published.append(state.tenant_id))

    first = asyncio.create_task(controller.refresh("a.example.com"))
    second = asyncio.create_task(controller.refresh("b.example.com"))
    await asyncio.sleep(0)

    resolver.gates["b.example.com"].set()
    await second
    resolver.gates["a.example.com"].set()
    await first

    assert controller.tenant.id == "tenant-2"
    assert branding.state.tenant_id == "tenant-2"
    assert published == ["tenant-2"]


@pytest.mark.asyncio
async def test_stale_failure_does_not_reset_fresh_tenant(branding):
    two = Tenant.model_validate(TENANT_TWO)
    resolver = GatedResolver({"a.example.com": RuntimeError("timeout"), "b.example.com": two})
    controller = TenantController(resolver, branding)

    first = asyncio.create_task(controller.refresh("a.example.com"))
    second = asyncio.create_task(controller.refresh("b.example.com"))
    await asyncio.sleep(0)

    resolver.gates["b.example.com"].set()
    await second
    resolver.gates["a.example.com"].set()
    await first

    assert controller.tenant.id == "tenant-2"
    assert branding.state.tenant_id == "tenant-2"


@pytest.mark.asyncio
async def test_suspended_controller_discards_results(db, branding):
    suspended = {"value": False}
    controller = TenantController(TenantResolver(db), branding, suspended=lambda: suspended["value"])
    hold = db.hold("tenants")

    pending = asyncio.create_task(controller.refresh("coach1.example.com"))
    await asyncio.sleep(0)
    suspended["value"] = True
    hold.set()
    await pending

    assert controller.tenant is None
    assert branding.state == BrandingState.default()


@pytest.mark.asyncio
async def test_clear_invalidates_in_flight_resolution(db, branding):
    controller = TenantController(TenantResolver(db), branding)
    hold = db.hold("tenants")

    pending = asyncio.create_task(controller.refresh("coach1.example.com"))
    await asyncio.sleep(0)
    controller.clear()
    hold.set()
    await pending

    assert controller.tenant is None
    assert branding.state.tenant_id is None
