import asyncio
import os
import sys
from dotenv import load_dotenv
from supabase import acreate_client

from coachhub.services.branding import BrandingState
from coachhub.services.tenant_resolver import TenantResolver

async def check_tenant(hostname: str, override: str = None):
    # Load environment variables
    load_dotenv()

    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_KEY")

    print(f"--- Tenant Resolution Check ---")
    print(f"URL: {url}")
    if key:
        print(f"Key detected: {key[:5]}...{key[-5:]} (Length: {len(key)})")
    else:
        print("Key detected: NONE")

    if not url or not key:
        print("\nERROR: SUPABASE_URL or SUPABASE_KEY missing from environment.")
        return

    try:
        client = await acreate_client(url, key)
        print(f"\nResolving '{hostname}'...")
        tenant = await TenantResolver(client).resolve(hostname, dev_override=override)

        if not tenant:
            print("No tenant matched. Default branding applies.")
            state = BrandingState.default()
        else:
            print(f"Tenant: {tenant.business_name} (id={tenant.id}, subdomain={tenant.subdomain})")
            state = BrandingState.for_tenant(tenant)

        print(f"Title: {state.title}")
        for var, value in state.theme.items():
            print(f"  {var}: {value}")

    except Exception as e:
        print(f"\nCaught Exception: {type(e).__name__}")
        print(f"Error Details: {e}")

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python check_tenant.py <hostname> [dev-override-subdomain]")
        sys.exit(1)
    asyncio.run(check_tenant(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None))
