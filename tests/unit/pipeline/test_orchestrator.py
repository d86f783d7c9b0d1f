"""Tests for the actor pipeline."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from dnd_forge.compendium.index import ContentIndex
from dnd_forge.core.cancellation import CancellationToken
from dnd_forge.core.config import ImageSettings, Settings
from dnd_forge.core.constants import DEFAULT_ACTOR_IMAGE, NAME_LOOKUP_TOKEN
from dnd_forge.core.exceptions import CancellationError, ExhaustedRetriesError, ImageGenerationError, StorageError
from dnd_forge.core.ids import is_valid_id
from dnd_forge.media import ImageService
from dnd_forge.models import ActorRequest, Blueprint
from dnd_forge.models.components import ComponentRequest, ComponentSelection
from dnd_forge.models.enums import CreatureSize
from dnd_forge.pipeline import ActorPipeline
from dnd_forge.pipeline.assembly import build_system
from dnd_forge.storage.memory import InMemoryEntityStore


NIMBLE_ESCAPE_UUID = "Compendium.dnd5e.monsterfeatures.Item.mfNimbleEscape01"
SCIMITAR_UUID = "Compendium.dnd5e.items.Item.itScimitar000001"

REQUEST = ActorRequest(prompt="A fire goblin", cr=2, size=CreatureSize.SMALL)


def task_context(prompt: str) -> dict[str, Any]:
    body = prompt.split("Task Context:\n", 1)[1]
    return json.loads(body.split("\n\nERROR:", 1)[0])


@pytest.fixture
def decision() -> dict[str, Any]:
    """Quartermaster output reusing two components and fabricating one."""
    return {
        "selectedUuids": [NIMBLE_ESCAPE_UUID, SCIMITAR_UUID],
        "customRequests": [
            {"name": "Cinder Burst", "type": "feat", "description": "A burst of embers."},
        ],
    }


@pytest.fixture
def plain_blueprint_data(blueprint_data: dict[str, Any]) -> dict[str, Any]:
    """The sample design without features, equipment or spells."""
    data = {**blueprint_data, "features": [], "equipment": []}
    data.pop("spellcasting")
    return data


@pytest.fixture
def settings() -> Settings:
    return Settings()


def make_pipeline(backend: Any, index: ContentIndex, settings: Settings, **kwargs: Any) -> ActorPipeline:
    return ActorPipeline(backend, index, settings=settings, retries=1, **kwargs)


@pytest.fixture
def full_backend(
    make_backend: Callable[..., Any],
    blueprint_data: dict[str, Any],
    decision: dict[str, Any],
    cinder_burst_item: dict[str, Any],
) -> Any:
    """Backend scripted for a run that reuses, fabricates and casts."""
    return make_backend(by_agent={
        "architect": [blueprint_data],
        "quartermaster": [decision],
        "blacksmith": [[cinder_burst_item]],
    })


class TestGenerateActor:
    """Tests for ActorPipeline.generate_actor."""

    async def test_full_run(self, full_backend: Any, content_index: ContentIndex, settings: Settings) -> None:
        """Test reused, fabricated and spellcasting items are assembled in order."""
        pipeline = make_pipeline(full_backend, content_index, settings)

        record = await pipeline.generate_actor(REQUEST)

        names = [item["name"] for item in record.items]
        assert names[:4] == ["Nimble Escape", "Scimitar", "Cinder Burst", "Spellcasting"]
        assert sorted(names[4:]) == ["Fire Bolt", "Fireball", "Mage Hand", "Misty Step"]
        assert record.name == "Snikkit Emberfang"
        assert record.system["details"]["cr"] == 2
        assert record.prototype_token["texture"]["scaleX"] == 0.8
        assert record.img == DEFAULT_ACTOR_IMAGE
        assert record.diagnostics.reused_count == 2
        assert record.diagnostics.custom_count == 1
        assert full_backend.prompts_for("artificer") == []

        feat = next(item for item in record.items if item["name"] == "Spellcasting")
        spells = [item for item in record.items if item["type"] == "spell"]
        assert len(spells) == 4
        for spell in spells:
            cached_for = spell["flags"]["dnd5e"]["cachedFor"]
            assert cached_for.startswith(f".Item.{feat['_id']}.Activity.")
            assert cached_for.rsplit(".", 1)[1] in feat["system"]["activities"]

    async def test_items_have_fresh_unique_ids(
        self,
        make_backend: Callable[..., Any],
        blueprint_data: dict[str, Any],
        decision: dict[str, Any],
        cinder_burst_item: dict[str, Any],
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test item, activity and effect ids are fresh and unique across the record."""
        heat = {"_id": "effectAura000001", "name": "Heat"}
        burst = {**cinder_burst_item, "effects": [heat]}
        aura = {
            "name": "Ember Aura",
            "type": "feat",
            "system": {"description": {"value": "<p>Warm.</p>"}},
            "effects": [heat],
        }
        backend = make_backend(by_agent={
            "architect": [blueprint_data],
            "quartermaster": [decision],
            "blacksmith": [[burst, aura]],
        })

        record = await make_pipeline(backend, content_index, settings).generate_actor(REQUEST)

        ids = record.item_ids()
        assert len(ids) == len(record.items) == len(set(ids))
        assert all(is_valid_id(item_id) for item_id in ids)
        assert "mfNimbleEscape01" not in ids
        scimitar = next(item for item in record.items if item["name"] == "Scimitar")
        assert scimitar["_stats"]["compendiumSource"] == SCIMITAR_UUID

        activity_ids = [key for item in record.items for key in item["system"].get("activities") or {}]
        effect_ids = [effect["_id"] for item in record.items for effect in item.get("effects") or []]
        assert len(effect_ids) >= 2
        assert "effectAura000001" not in effect_ids
        sub_ids = activity_ids + effect_ids
        assert len(sub_ids) == len(set(sub_ids))
        assert all(is_valid_id(value) for value in sub_ids)

    async def test_custom_item_never_replaced_by_index_match(
        self,
        make_backend: Callable[..., Any],
        plain_blueprint_data: dict[str, Any],
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test a fabricated magic weapon survives although an index weapon matches its name."""
        request = {"name": "Longsword of Flame", "type": "weapon", "description": "A burning blade."}
        fabricated = {
            "name": "Longsword of Flame",
            "type": "weapon",
            "system": {"description": {"value": "<p>The blade burns.</p>"}},
        }
        backend = make_backend(by_agent={
            "architect": [{**plain_blueprint_data, "equipment": [request]}],
            "quartermaster": [{"selectedUuids": [], "customRequests": [request]}],
            "artificer": [[fabricated]],
        })

        record = await make_pipeline(backend, content_index, settings).generate_actor(REQUEST)

        [sword] = record.items
        assert sword["name"] == "Longsword of Flame"
        assert "The blade burns." in sword["system"]["description"]["value"]
        assert "compendiumSource" not in sword.get("_stats", {})
        assert record.diagnostics.reused_count == 0
        assert record.diagnostics.custom_count == 1

    async def test_dynamic_name_in_custom_items(
        self,
        full_backend: Any,
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test the actor's name in fabricated text becomes a lookup token."""
        record = await make_pipeline(full_backend, content_index, settings).generate_actor(REQUEST)

        burst = next(item for item in record.items if item["name"] == "Cinder Burst")
        description = burst["system"]["description"]["value"]
        assert NAME_LOOKUP_TOKEN in description
        assert "Snikkit Emberfang" not in description

    async def test_quartermaster_sees_candidates(
        self,
        full_backend: Any,
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test every component is offered with its index matches."""
        await make_pipeline(full_backend, content_index, settings).generate_actor(REQUEST)

        [prompt] = full_backend.prompts_for("quartermaster")
        candidates = {group["feature"]: group["options"] for group in task_context(prompt)["candidates"]}
        assert set(candidates) == {"Nimble Escape", "Cinder Burst", "Scimitar"}
        assert candidates["Nimble Escape"][0]["uuid"] == NIMBLE_ESCAPE_UUID
        assert candidates["Scimitar"][0]["uuid"] == SCIMITAR_UUID
        assert candidates["Cinder Burst"] == []

    async def test_progress_is_monotonic(
        self,
        full_backend: Any,
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test progress starts at drafting and ends at 100."""
        updates: list[tuple[int, str]] = []

        await make_pipeline(full_backend, content_index, settings).generate_actor(
            REQUEST, on_progress=lambda percent, message: updates.append((percent, message))
        )

        percents = [percent for percent, _ in updates]
        assert percents == sorted(percents)
        assert updates[0] == (5, "Drafting blueprint")
        assert updates[-1] == (100, "Actor ready")

    async def test_no_components_skips_agents(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        plain_blueprint_data: dict[str, Any],
    ) -> None:
        """Test a design without components only calls the Architect."""
        backend = make_backend(by_agent={"architect": [plain_blueprint_data]})

        record = await make_pipeline(backend, content_index, settings).generate_actor(REQUEST)

        assert record.items == []
        assert [agent for agent, _, _ in backend.calls] == ["architect"]

    async def test_exhausted_retries_abort(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test an Architect that never validates aborts the run."""
        backend = make_backend(by_agent={"architect": ["not json", {"cr": 2}]})

        with pytest.raises(ExhaustedRetriesError):
            await make_pipeline(backend, content_index, settings).generate_actor(REQUEST)

        assert len(backend.calls) == 2

    async def test_cancellation_stops_run(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        blueprint_data: dict[str, Any],
        decision: dict[str, Any],
    ) -> None:
        """Test a cancelled run raises before the next agent call."""
        backend = make_backend(by_agent={"architect": [blueprint_data], "quartermaster": [decision]})
        cancel = CancellationToken()

        def on_progress(percent: int, message: str) -> None:
            if percent >= 20:
                cancel.cancel("user")

        with pytest.raises(CancellationError):
            await make_pipeline(backend, content_index, settings).generate_actor(
                REQUEST, cancel=cancel, on_progress=on_progress
            )

        assert backend.prompts_for("quartermaster") == []


class TestPortrait:
    """Tests for portrait fabrication during generation."""

    async def test_portrait_applied(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        plain_blueprint_data: dict[str, Any],
        image_backend: Any,
        content_store: Any,
    ) -> None:
        """Test the portrait becomes the actor image and token texture."""
        backend = make_backend(by_agent={"architect": [plain_blueprint_data]})
        service = ImageService(image_backend, content_store, ImageSettings())
        pipeline = make_pipeline(backend, content_index, settings, image_service=service)

        record = await pipeline.generate_actor(REQUEST, generate_portrait=True)

        assert record.img in content_store.uploads
        assert record.prototype_token["texture"]["src"] == record.img
        assert "A fire goblin" in image_backend.prompts[0]
        assert record.diagnostics.portrait_error is None


    async def test_portrait_failure_is_not_fatal(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        plain_blueprint_data: dict[str, Any],
        content_store: Any,
    ) -> None:
        """Test a failed portrait leaves the default image and a diagnostic."""
        class FailingImageBackend:
            async def generate(self, prompt: str, size: str, cancel: Any = None) -> Any:
                raise ImageGenerationError("quota exceeded", provider="openai")

        backend = make_backend(by_agent={"architect": [plain_blueprint_data]})
        service = ImageService(FailingImageBackend(), content_store, ImageSettings())
        pipeline = make_pipeline(backend, content_index, settings, image_service=service)

        record = await pipeline.generate_actor(REQUEST, generate_portrait=True)

        assert record.img == DEFAULT_ACTOR_IMAGE
        assert "quota exceeded" in record.diagnostics.portrait_error
        assert content_store.uploads == {}

    async def test_item_icons(
        self,
        full_backend: Any,
        content_index: ContentIndex,
        image_backend: Any,
        content_store: Any,
    ) -> None:
        """Test fabricated items get icons when enabled."""
        images = ImageSettings(generate_item_icons=True)
        service = ImageService(image_backend, content_store, images)
        pipeline = make_pipeline(full_backend, content_index, Settings(images=images), image_service=service)

        record = await pipeline.generate_actor(REQUEST)

        burst = next(item for item in record.items if item["name"] == "Cinder Burst")
        assert burst["img"] in content_store.uploads
        assert len(image_backend.prompts) == 1


class TestStages:
    """Tests for individual pipeline stages."""

    async def test_fabrication_splits_requests(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        blueprint: Blueprint,
        cinder_burst_item: dict[str, Any],
    ) -> None:
        """Test the Blacksmith gets features and the Artificer equipment."""
        cloak = {"name": "Ember Cloak", "type": "equipment", "system": {"description": {"value": "Warm."}}}
        backend = make_backend(by_agent={"blacksmith": [[cinder_burst_item]], "artificer": [[cloak]]})
        selection = ComponentSelection(
            custom_features=(ComponentRequest(name="Cinder Burst", type="feat"),),
            custom_equipment=(ComponentRequest(name="Ember Cloak", type="equipment"),),
        )

        items = await make_pipeline(backend, content_index, settings).run_fabrication(blueprint, selection)

        assert [item["name"] for item in items] == ["Cinder Burst", "Ember Cloak"]
        assert len(backend.prompts_for("blacksmith")) == 1
        assert task_context(backend.prompts_for("artificer")[0])["requests"][0]["name"] == "Ember Cloak"

    async def test_fabrication_failure_surfaces(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        blueprint: Blueprint,
    ) -> None:
        """Test a failing fabricator raises its own error, not a group."""
        cloak = {"name": "Ember Cloak", "type": "equipment", "system": {"description": {"value": "Warm."}}}
        backend = make_backend(by_agent={"blacksmith": ["nope", "still nope"], "artificer": [[cloak]]})
        selection = ComponentSelection(
            custom_features=(ComponentRequest(name="Cinder Burst", type="feat"),),
            custom_equipment=(ComponentRequest(name="Ember Cloak", type="equipment"),),
        )

        with pytest.raises(ExhaustedRetriesError):
            await make_pipeline(backend, content_index, settings).run_fabrication(blueprint, selection)

    async def test_quartermaster_skipped_without_components(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        plain_blueprint_data: dict[str, Any],
    ) -> None:
        """Test no agent call is made when there is nothing to select."""
        backend = make_backend()
        blueprint = Blueprint.model_validate(plain_blueprint_data)

        selection = await make_pipeline(backend, content_index, settings).run_quartermaster(blueprint)

        assert selection == ComponentSelection()
        assert backend.calls == []

    async def test_builder_drops_custom_spellcasting(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        blueprint: Blueprint,
    ) -> None:
        """Test a custom Spellcasting item gives way to the built feat."""
        pipeline = make_pipeline(make_backend(), content_index, settings)
        custom = [{"_id": "cuSpellcasting01", "name": "Spellcasting", "type": "feat", "system": {}}]

        record = await pipeline.run_builder(blueprint, [], custom)

        spellcasting = [item for item in record.items if item["name"] == "Spellcasting"]
        assert len(spellcasting) == 1
        assert spellcasting[0]["_id"] != "cuSpellcasting01"


class TestAdjustActor:
    """Tests for ActorPipeline.adjust_actor."""

    @pytest.fixture
    async def stored_actor(self, host_store: InMemoryEntityStore, blueprint: Blueprint) -> str:
        return await host_store.create_actor({
            "name": blueprint.name,
            "type": "npc",
            "img": "portraits/snikkit.png",
            "system": build_system(blueprint),
            "items": [{
                "_id": "itOldClaw0000001",
                "name": "Old Claw",
                "type": "feat",
                "system": {"description": {"value": "<p>Snikkit Emberfang scratches.</p>"}},
            }],
            "prototypeToken": {"name": blueprint.name, "texture": {"src": "portraits/snikkit.png", "scaleX": 0.8}},
        })

    async def test_replaces_actor(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        host_store: InMemoryEntityStore,
        stored_actor: str,
        plain_blueprint_data: dict[str, Any],
    ) -> None:
        """Test items and core fields are replaced while the art is kept."""
        revised = {**plain_blueprint_data, "name": "Snikkit the Bold", "size": "med"}
        backend = make_backend(by_agent={"adjustment": [revised]})
        pipeline = make_pipeline(backend, content_index, settings, host_store=host_store)

        record = await pipeline.adjust_actor(stored_actor, "Make it braver")

        actor = await host_store.get_actor(stored_actor)
        assert actor["name"] == record.name == "Snikkit the Bold"
        assert actor["items"] == []
        assert actor["img"] == "portraits/snikkit.png"
        assert actor["prototypeToken"]["texture"] == {"src": "portraits/snikkit.png", "scaleX": 0.8}
        assert actor["prototypeToken"]["width"] == 1
        assert host_store.calls == ["create_actor", "delete_entities:Item", "update_entity", "create_entities:Item"]

    async def test_sends_rebuilt_blueprint(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        host_store: InMemoryEntityStore,
        stored_actor: str,
        plain_blueprint_data: dict[str, Any],
    ) -> None:
        """Test the Adjustment agent sees the actor as it is now."""
        backend = make_backend(by_agent={"adjustment": [plain_blueprint_data]})

        await make_pipeline(backend, content_index, settings).adjust_actor(stored_actor, "Tweak", host_store)

        context = task_context(backend.prompts_for("adjustment")[0])
        assert context["userPrompt"] == "Tweak"
        original = context["originalBlueprint"]
        assert original["name"] == "Snikkit Emberfang"
        assert [feature["name"] for feature in original["features"]] == ["Old Claw"]
        assert original["features"][0]["description"] == "Snikkit Emberfang scratches."

    async def test_cancel_before_apply_leaves_actor(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        host_store: InMemoryEntityStore,
        stored_actor: str,
        plain_blueprint_data: dict[str, Any],
    ) -> None:
        """Test a run cancelled during assembly never touches the actor."""
        backend = make_backend(by_agent={"adjustment": [{**plain_blueprint_data, "name": "Changed"}]})
        cancel = CancellationToken()

        def on_progress(percent: int, message: str) -> None:
            if percent >= 80:
                cancel.cancel()

        with pytest.raises(CancellationError):
            await make_pipeline(backend, content_index, settings).adjust_actor(
                stored_actor, "Tweak", host_store, cancel=cancel, on_progress=on_progress
            )

        actor = await host_store.get_actor(stored_actor)
        assert actor["name"] == "Snikkit Emberfang"
        assert [item["name"] for item in actor["items"]] == ["Old Claw"]
        assert host_store.calls == ["create_actor"]

    async def test_missing_actor(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
        host_store: InMemoryEntityStore,
    ) -> None:
        """Test adjusting an unknown actor fails without calling agents."""
        backend = make_backend()

        with pytest.raises(StorageError):
            await make_pipeline(backend, content_index, settings).adjust_actor("nope", "Tweak", host_store)

        assert backend.calls == []

    async def test_no_store(
        self,
        make_backend: Callable[..., Any],
        content_index: ContentIndex,
        settings: Settings,
    ) -> None:
        """Test adjustment needs a host store."""
        with pytest.raises(StorageError):
            await make_pipeline(make_backend(), content_index, settings).adjust_actor("a", "b")


class TestFromSettings:
    """Tests for ActorPipeline.from_settings."""

    def test_wiring(self, mock_env_vars: dict[str, str]) -> None:
        """Test the configured pipeline uses the database and image service."""
        from dnd_forge.backends.openrouter import OpenRouterBackend
        from dnd_forge.storage.stores import SQLiteEntityStore

        pipeline = ActorPipeline.from_settings()

        assert isinstance(pipeline.backend, OpenRouterBackend)
        assert isinstance(pipeline.host_store, SQLiteEntityStore)
        assert pipeline.image_service is not None
        assert pipeline.retries == 3

    def test_images_disabled_without_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing image key disables fabrication instead of failing."""
        monkeypatch.delenv("DND_FORGE_OPENAI_API_KEY", raising=False)

        pipeline = ActorPipeline.from_settings()

        assert pipeline.image_service is None
