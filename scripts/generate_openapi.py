#!/usr/bin/env python3
"""
Generate the OpenAPI JSON specification of the SCIM Mirror API.

The spec is produced from the FastAPI app itself, then:
- internal documentation endpoints are removed
- server entries for the target environment are added
- every operation is guaranteed an operationId and a tag

Usage:
    python scripts/generate_openapi.py
    python scripts/generate_openapi.py --output openapi/openapi.json --pretty
    python scripts/generate_openapi.py --env prod
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

# Add src to path for imports
script_dir = Path(__file__).parent.absolute()
project_root = script_dir.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from scim_mirror.main import create_app  # noqa: E402
from scim_mirror.settings import Settings  # noqa: E402

OPERATION_METHODS = ("get", "post", "put", "patch", "delete")

TAG_DESCRIPTIONS = {
    "Health": "Liveness of the mirror service",
    "Sync": "Change notifications and on-demand reconciliation",
    "Users": "Mirrored directory users and write-through group assignment edits",
    "Groups": "Mirrored directory groups and write-through membership edits",
}


def get_environment_servers(env: str = "dev") -> list[dict[str, str]]:
    """Get server configurations for different environments."""
    servers = {
        "dev": [{"url": "http://localhost:8000", "description": "Local development server"}],
        "uat": [{"url": "https://scim-mirror-uat.example.com", "description": "UAT environment"}],
        "prod": [{"url": "https://scim-mirror.example.com", "description": "Production environment"}],
    }
    return servers.get(env, servers["dev"])


def filter_internal_endpoints(openapi_spec: dict[str, Any]) -> dict[str, Any]:
    """Remove documentation endpoints from the published spec."""
    for path in ("/", "/docs", "/redoc", "/openapi.json"):
        openapi_spec.get("paths", {}).pop(path, None)
    return openapi_spec


def enhance_api_metadata(openapi_spec: dict[str, Any], env: str = "dev") -> dict[str, Any]:
    openapi_spec["servers"] = get_environment_servers(env)
    openapi_spec["tags"] = [{"name": name, "description": text} for name, text in TAG_DESCRIPTIONS.items()]
    return openapi_spec


def clean_openapi_spec(openapi_spec: dict[str, Any]) -> dict[str, Any]:
    """Make sure every operation carries an operationId and a tag."""
    for path, methods in openapi_spec.get("paths", {}).items():
        for method, operation in methods.items():
            if method.lower() not in OPERATION_METHODS:
                continue
            if "operationId" not in operation:
                clean_path = path.replace("/", "_").replace("{", "").replace("}", "").strip("_")
                operation["operationId"] = f"{method.lower()}_{clean_path}"
            if "tags" not in operation:
                operation["tags"] = ["General"]
    return openapi_spec


def generate_openapi_spec(env: str = "dev", skip_auth: bool = False) -> dict[str, Any]:
    """Generate the complete OpenAPI specification."""
    if skip_auth:
        settings = Settings(
            _env_file=None,
            ias_token_url="https://ias.example.com/oauth2/token",
            ias_client_id="openapi",
            ias_client_secret="openapi",
            ias_scim_base_url="https://ias.example.com/scim",
            database_connection_string="postgresql://localhost/scim_mirror",
            enable_scheduler=False,
        )
    else:
        settings = Settings()

    # No startup hooks run, so neither the directory nor the database is contacted
    app = create_app(settings)

    openapi_spec = app.openapi()
    openapi_spec = filter_internal_endpoints(openapi_spec)
    openapi_spec = enhance_api_metadata(openapi_spec, env)
    openapi_spec = clean_openapi_spec(openapi_spec)
    return openapi_spec


def main() -> None:
    """Main script entry point."""
    parser = argparse.ArgumentParser(description="Generate OpenAPI JSON for the SCIM Mirror API")
    parser.add_argument("--output", "-o", default="openapi/openapi.json", help="Output file path")
    parser.add_argument("--env", "-e", choices=["dev", "uat", "prod"], default="dev")
    parser.add_argument("--pretty", "-p", action="store_true", help="Pretty print JSON output")
    parser.add_argument(
        "--skip-auth-validation",
        action="store_true",
        help="Use placeholder settings instead of the environment",
    )
    args = parser.parse_args()

    openapi_spec = generate_openapi_spec(args.env, args.skip_auth_validation)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(openapi_spec, f, indent=2 if args.pretty else None, ensure_ascii=False)

    print(f"OpenAPI spec written to: {output_path.absolute()} ({len(openapi_spec.get('paths', {}))} paths)")


if __name__ == "__main__":
    main()
