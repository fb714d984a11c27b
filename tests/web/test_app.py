"""Tests for the HTTP API: /process, /health and the recipe library routes."""

import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

from reelchef.config import get_settings
from reelchef.db.store import RecipeRecord
from reelchef.errors import DownloadError, DownloadFailure, FetchError, NotFoundError
from reelchef.pipeline.admission import AdmissionQueue
from reelchef.pipeline.models import PageStructuringResult, Recipe
from reelchef.pipeline.orchestrator import RecipeExtractionService
from reelchef.web.app import create_app
from reelchef.web.dependencies import get_extraction_service, get_store

URL = "https://www.instagram.com/reel/ABC123/"


class FakeStore:
    """In-memory stand-in for SupabaseRecipeStore."""

    def __init__(self):
        self.records: dict[str, RecipeRecord] = {}
        self.tags: dict[str, dict] = {}
        self.folders: dict[str, dict] = {}

    def save(self, recipe, tag_ids=None, folder_id=None):
        recipe.id = str(uuid.uuid4())
        self.records[recipe.id] = RecipeRecord(recipe=recipe, tag_ids=list(tag_ids or []), folder_id=folder_id)
        return recipe.id

    def search(self, q=None, tag_ids=None, folder_id=None):
        records = list(self.records.values())
        if folder_id:
            records = [r for r in records if r.folder_id == folder_id]
        if tag_ids:
            records = [r for r in records if set(tag_ids) <= set(r.tag_ids)]
        if q:
            records = [r for r in records if q.lower() in r.recipe.title.lower()]
        return records

    def get(self, recipe_id):
        if recipe_id not in self.records:
            raise NotFoundError("Recipe", recipe_id)
        return self.records[recipe_id]

    def update(self, recipe_id, updates):
        record = self.get(recipe_id)
        for key, value in updates.items():
            if key == "tag_ids":
                record.tag_ids = list(value)
            elif key == "folder_id":
                record.folder_id = value
            else:
                setattr(record.recipe, key, value)
        return record

    def delete(self, recipe_id):
        self.get(recipe_id)
        del self.records[recipe_id]

    def list_tags(self):
        return sorted(self.tags.values(), key=lambda t: t["name"])

    def create_tag(self, name):
        for tag in self.tags.values():
            if tag["name"] == name:
                return tag
        tag = {"id": str(uuid.uuid4()), "name": name}
        self.tags[tag["id"]] = tag
        return tag

    def delete_tag(self, tag_id):
        if self.tags.pop(tag_id, None) is None:
            raise NotFoundError("Tag", tag_id)

    def list_folders(self):
        return list(self.folders.values())

    def get_folder(self, folder_id):
        if folder_id not in self.folders:
            raise NotFoundError("Folder", folder_id)
        return self.folders[folder_id]

    def create_folder(self, name):
        folder = {"id": str(uuid.uuid4()), "name": name}
        self.folders[folder["id"]] = folder
        return folder

    def rename_folder(self, folder_id, name):
        folder = self.get_folder(folder_id)
        folder["name"] = name
        return folder

    def delete_folder(self, folder_id):
        self.get_folder(folder_id)
        del self.folders[folder_id]
        for record in self.records.values():
            if record.folder_id == folder_id:
                record.folder_id = None


class RaisingPipeline:
    store = None

    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay

    async def run(self, url, options, on_progress=None):
        await asyncio.sleep(self.delay)
        raise self.error


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_client(store):
    def _make(service=None):
        app = create_app()
        if service is not None:
            app.dependency_overrides[get_extraction_service] = lambda: service
        app.dependency_overrides[get_store] = lambda: store
        return TestClient(app, raise_server_exceptions=False)

    return _make


# ---------------------------------------------------------------------------
# /process and /health
# ---------------------------------------------------------------------------


class TestProcess:
    def test_success_envelope(self, make_client, make_pipeline, complete_recipe, usage_web):
        pipeline, *_ = make_pipeline(
            page_result=PageStructuringResult(complete_recipe, is_incomplete=False, usage=usage_web),
        )
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(2)))

        response = client.post("/process", json={"url": URL})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["method"] == "web_scraping"
        assert body["data"]["title"] == complete_recipe.title
        assert body["data"]["steps"] == complete_recipe.steps
        assert body["usage"]["total_tokens"] == 1500
        assert body["progress"]["percentage"] == 90
        assert body["saved"] is False

    def test_unsafe_url_is_400(self, make_client, make_pipeline):
        pipeline, page_fetcher, *_ = make_pipeline()
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1)))

        response = client.post("/process", json={"url": "http://169.254.169.254/latest/meta-data/"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert page_fetcher.calls == []

    def test_missing_url_is_400(self, make_client, make_pipeline):
        pipeline, *_ = make_pipeline()
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1)))

        response = client.post("/process", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_unknown_force_method_is_400(self, make_client, make_pipeline):
        pipeline, *_ = make_pipeline()
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1)))

        response = client.post("/process", json={"url": URL, "force_method": "telepathy"})
        assert response.status_code == 400

    def test_timeout_is_504(self, make_client):
        service = RecipeExtractionService(
            RaisingPipeline(RuntimeError("never"), delay=1.0), AdmissionQueue(1), timeout_seconds=0.05
        )
        response = make_client(service).post("/process", json={"url": URL})

        assert response.status_code == 504
        body = response.json()
        assert body["error"] == "Recipe processing timed out"
        assert "Timed out" in body["message"]  # development mode includes detail

    def test_exhausted_is_500_with_generic_error(self, make_client, make_pipeline):
        pipeline, *_ = make_pipeline(
            fetch_error=FetchError(URL, "navigation timed out after 90s"),
            download_error=DownloadError(DownloadFailure.RATE_LIMITED, "rate limited", platform="instagram"),
        )
        response = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1))).post("/process", json={"url": URL})

        assert response.status_code == 500
        body = response.json()
        assert body == {"success": False, "error": "Failed to process recipe", "message": body["message"]}
        assert "navigation timed out" in body["message"]

    def test_unexpected_error_is_500(self, make_client):
        service = RecipeExtractionService(RaisingPipeline(KeyError("boom")), AdmissionQueue(1))
        response = make_client(service).post("/process", json={"url": URL})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to process recipe"

    def test_save_without_store_is_400(self, make_client, make_pipeline):
        pipeline, *_ = make_pipeline()
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1)))

        response = client.post("/process", json={"url": URL, "save": True})
        assert response.status_code == 400
        assert "store" in response.json()["error"]


class TestHealth:
    def test_reports_queue_and_memory(self, make_client, make_pipeline):
        pipeline, *_ = make_pipeline()
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(3)))

        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["queue"] == {"capacity": 3, "running": 0, "waiting": 0}
        assert body["memory_mb"] > 0


# ---------------------------------------------------------------------------
# Library routes
# ---------------------------------------------------------------------------


def _seed(store, title="Crêpes", tag_ids=(), folder_id=None):
    recipe = Recipe(title=title, source_url=URL, ingredients=["farine"], steps=["Cuire"])
    return store.save(recipe, list(tag_ids), folder_id)


class TestRecipeRoutes:
    def test_create_and_get(self, make_client):
        client = make_client()
        response = client.post("/recipes", json={
            "title": "Pâtes carbonara",
            "source_url": URL,
            "ingredients": ["pâtes", "lardons"],
            "steps": ["Cuire les pâtes"],
        })

        assert response.status_code == 201
        created = response.json()["data"]
        assert created["id"]
        assert created["ingredients"] == ["pâtes", "lardons"]

        fetched = client.get(f"/recipes/{created['id']}").json()["data"]
        assert fetched["title"] == "Pâtes carbonara"

    def test_create_rejects_blank_title(self, make_client):
        response = make_client().post("/recipes", json={"title": "", "source_url": URL})
        assert response.status_code == 400

    def test_search_by_tags_comma_separated(self, make_client, store):
        both = _seed(store, "Both", tag_ids=["t1", "t2"])
        _seed(store, "One", tag_ids=["t1"])

        data = make_client().get("/recipes", params={"tag_ids": "t1,t2"}).json()["data"]
        assert [r["id"] for r in data] == [both]

    def test_search_by_text(self, make_client, store):
        _seed(store, "Crêpes sucrées")
        _seed(store, "Gratin")

        data = make_client().get("/recipes", params={"q": "crêpes"}).json()["data"]
        assert [r["title"] for r in data] == ["Crêpes sucrées"]

    def test_partial_update(self, make_client, store):
        recipe_id = _seed(store)
        response = make_client().patch(f"/recipes/{recipe_id}", json={"title": "Crêpes bretonnes", "tag_ids": ["t9"]})

        data = response.json()["data"]
        assert data["title"] == "Crêpes bretonnes"
        assert data["steps"] == ["Cuire"]
        assert data["tag_ids"] == ["t9"]

    def test_unknown_recipe_is_404(self, make_client):
        response = make_client().get("/recipes/does-not-exist")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_delete(self, make_client, store):
        recipe_id = _seed(store)
        client = make_client()
        assert client.delete(f"/recipes/{recipe_id}").json() == {"success": True}
        assert client.get(f"/recipes/{recipe_id}").status_code == 404


class TestTagRoutes:
    def test_create_is_idempotent_by_name(self, make_client):
        client = make_client()
        first = client.post("/tags", json={"name": "dessert"})
        second = client.post("/tags", json={"name": "dessert"})

        assert first.status_code == 201
        assert first.json()["data"]["id"] == second.json()["data"]["id"]
        assert len(client.get("/tags").json()["data"]) == 1

    def test_delete_unknown_is_404(self, make_client):
        assert make_client().delete("/tags/nope").status_code == 404


class TestFolderRoutes:
    def test_detail_lists_recipes(self, make_client, store):
        client = make_client()
        folder = client.post("/folders", json={"name": "Desserts"}).json()["data"]
        _seed(store, "Crêpes", folder_id=folder["id"])
        _seed(store, "Gratin")

        data = client.get(f"/folders/{folder['id']}").json()["data"]
        assert data["name"] == "Desserts"
        assert data["recipe_count"] == 1
        assert [r["title"] for r in data["recipes"]] == ["Crêpes"]

    def test_rename(self, make_client):
        client = make_client()
        folder = client.post("/folders", json={"name": "Desserts"}).json()["data"]
        renamed = client.patch(f"/folders/{folder['id']}", json={"name": "Sucré"}).json()["data"]
        assert renamed["name"] == "Sucré"

    def test_delete_detaches_recipes(self, make_client, store):
        client = make_client()
        folder = client.post("/folders", json={"name": "Desserts"}).json()["data"]
        recipe_id = _seed(store, folder_id=folder["id"])

        assert client.delete(f"/folders/{folder['id']}").status_code == 200
        assert client.get(f"/recipes/{recipe_id}").json()["data"]["folder_id"] is None


class TestStoreUnavailable:
    def test_library_routes_503_without_store(self):
        # No override for get_store: the test environment has no Supabase config
        app = create_app()
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/recipes")

        assert response.status_code == 503
        assert response.json()["error"] == "Recipe library is not configured"


class TestRequestGuards:
    def test_process_rate_limited_per_client(self, make_client, make_pipeline, complete_recipe, monkeypatch):
        monkeypatch.setattr(get_settings(), "process_rate_limit", "2/minute")
        pipeline, page_fetcher, *_ = make_pipeline(
            page_result=PageStructuringResult(complete_recipe, is_incomplete=False),
        )
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1)))

        statuses = [client.post("/process", json={"url": URL}).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        assert len(page_fetcher.calls) == 2
        body = client.post("/process", json={"url": URL}).json()
        assert body["success"] is False
        assert body["error"] == "Too many requests, please try again later"

    def test_rate_limit_does_not_cover_library_routes(self, make_client, monkeypatch):
        monkeypatch.setattr(get_settings(), "process_rate_limit", "1/minute")
        client = make_client()
        assert all(client.get("/tags").status_code == 200 for _ in range(3))

    def test_oversized_body_is_413(self, make_client, make_pipeline):
        pipeline, page_fetcher, *_ = make_pipeline()
        client = make_client(RecipeExtractionService(pipeline, AdmissionQueue(1)))

        response = client.post(
            "/process",
            content=b'{"url": "' + b"a" * (1024 * 1024) + b'"}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json()["success"] is False
        assert response.json()["error"] == "Request body too large"
        assert page_fetcher.calls == []

    def test_body_limit_applies_to_library_routes(self, make_client, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_body_bytes", 64)
        client = make_client()

        response = client.post("/tags", json={"name": "d" * 100})

        assert response.status_code == 413
        assert client.get("/tags").json()["data"] == []

    def test_small_body_passes(self, make_client, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_body_bytes", 64)
        assert make_client().post("/tags", json={"name": "dessert"}).status_code == 201
