# tests/test_routes.py
import sys
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from maestro_themes.auth import Unauthorized  # noqa: E402
from maestro_themes.connector_loader import ConnectorBundle, self_hosted_bundle  # noqa: E402
from maestro_themes.connectors.memory import InMemoryInventory, InMemoryUpdateSource  # noqa: E402
from maestro_themes.errors import UpgradeInProgress  # noqa: E402
from maestro_themes.main import create_app  # noqa: E402
from maestro_themes.models import BackendResult  # noqa: E402
from support import WEBPRO, StaticBackend, make_settings, make_store  # noqa: E402

PREFIX = "/bluehost/maestro/v1"
AUTH = {"Authorization": "Bearer test-token"}


class _StubAuthenticator:
    def __init__(self, result) -> None:
        self.result = result
        self.headers = []

    async def authenticate(self, authorization_header):
        self.headers.append(authorization_header)
        return self.result


class _InProgressOrchestrator:
    def __init__(self) -> None:
        self.calls = []

    async def upgrade(self, package_id, *, caller=None):
        self.calls.append(package_id)
        raise UpgradeInProgress(package_id)

    def live_attempts(self):
        return {}


class ThemesEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = make_store()
        self.authenticator = _StubAuthenticator(WEBPRO)
        self.app = create_app(make_settings(), self_hosted_bundle(self.store), self.authenticator)
        self.client = TestClient(self.app)

    def _with_backend(self, backend) -> TestClient:
        bundle = ConnectorBundle(
            mode="self_hosted",
            inventory=InMemoryInventory(self.store),
            updates=InMemoryUpdateSource(self.store),
            backend=backend,
        )
        return TestClient(create_app(make_settings(), bundle, self.authenticator))

    def test_list_themes(self) -> None:
        resp = self.client.get(f"{PREFIX}/themes", headers=AUTH)

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertFalse(body["auto_update_global"])
        self.assertIsInstance(body["last_checked"], int)
        themes = {t["id"]: t for t in body["themes"]}
        self.assertEqual(
            themes["twentytwentyone"],
            {
                "id": "twentytwentyone",
                "name": "Twenty Twenty-One",
                "title": "Twenty Twenty-One",
                "status": "active",
                "version": "1.0",
                "update": True,
                "update_version": "1.2",
                "auto_updates": False,
            },
        )
        self.assertFalse(themes["astra"]["update"])
        self.assertIsNone(themes["astra"]["update_version"])
        self.assertTrue(themes["astra"]["auto_updates"])
        self.assertEqual(self.authenticator.headers, ["Bearer test-token"])

    def test_upgrade_theme_success(self) -> None:
        resp = self.client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={"slug": "twentytwentyone"})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"slug": "twentytwentyone", "version": "1.2", "success": True})
        self.assertEqual(self.store.installed["twentytwentyone"].version, "1.2")

        listing = self.client.get(f"{PREFIX}/themes", headers=AUTH).json()
        upgraded = next(t for t in listing["themes"] if t["id"] == "twentytwentyone")
        self.assertEqual(upgraded["version"], "1.2")
        self.assertFalse(upgraded["update"])

    def test_upgrade_theme_already_up_to_date(self) -> None:
        resp = self.client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={"slug": "astra"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Theme already up to date", "code": "alreadyUpdated"})

    def test_upgrade_unknown_theme(self) -> None:
        resp = self.client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={"slug": "does-not-exist"})

        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "themeNotFound")

    def test_upgrade_in_progress_is_conflict(self) -> None:
        self.app.state.orchestrator = _InProgressOrchestrator()

        resp = self.client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={"slug": "twentytwentyone"})

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json(), {"error": "Theme upgrade already in progress", "code": "upgradeInProgress"})

    def test_backend_failure_is_still_ok_with_success_false(self) -> None:
        client = self._with_backend(StaticBackend(BackendResult(success=False, message="Could not copy files")))

        resp = client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={"slug": "twentytwentyone"})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"slug": "twentytwentyone", "version": "1.2", "success": False})

    def test_missing_slug_is_rejected(self) -> None:
        resp = self.client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={})

        self.assertEqual(resp.status_code, 422)

    def test_unauthenticated_requests_are_denied_without_side_effects(self) -> None:
        self.authenticator.result = Unauthorized("Missing Authorization header")

        listing = self.client.get(f"{PREFIX}/themes")
        upgrade = self.client.post(f"{PREFIX}/themes/upgrade", json={"slug": "twentytwentyone"})

        self.assertEqual(listing.status_code, 401)
        self.assertEqual(upgrade.status_code, 401)
        self.assertEqual(self.store.installed["twentytwentyone"].version, "1.0")

    def test_not_connected_caller_is_forbidden(self) -> None:
        self.authenticator.result = Unauthorized("Caller is not a connected Web Pro", status_code=403)

        resp = self.client.post(f"{PREFIX}/themes/upgrade", headers=AUTH, json={"slug": "twentytwentyone"})

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.store.installed["twentytwentyone"].version, "1.0")

    def test_health(self) -> None:
        resp = self.client.get("/health")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok", "mode": "self_hosted", "upgrades_in_progress": 0})


if __name__ == "__main__":
    unittest.main()
