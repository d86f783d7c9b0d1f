"""Actor Pipeline - multi-agent actor generation and adjustment.

Stages of a run:

1. DRAFT: Architect designs a Blueprint (or Adjustment revises one rebuilt
   from the existing actor)
2. RESOLVE: each component gets up to N content-index candidates; the
   Quartermaster decides what is reused and what is fabricated
3. FABRICATE: Blacksmith (features) and Artificer (equipment) run
   concurrently
4. REPAIR: fabricated items are sanitized (never swapped for index
   matches) and the Automation Repair Engine fixes them
5. ASSEMBLE: system data, spellcasting, option groups, dynamic descriptions
   and token settings form the Composite Actor Record
6. APPLY (adjustment only): the target actor is replaced in one step after
   assembly; a cancelled or failed run leaves it untouched
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from dnd_forge.agents.architect import AdjustmentAgent, ArchitectAgent
from dnd_forge.agents.fabrication import ArtificerAgent, BlacksmithAgent
from dnd_forge.agents.quartermaster import QuartermasterAgent
from dnd_forge.compendium.resolver import ItemResolver
from dnd_forge.core.config import Settings, get_settings
from dnd_forge.core.exceptions import CancellationError, ConfigurationError, StorageError
from dnd_forge.core.logging import get_logger, log_stage, run_context
from dnd_forge.items.automation import AutomationRepairEngine, RepairResult
from dnd_forge.items.utils import (
    ensure_activity_ids,
    ensure_item_has_image,
    normalize_mutually_exclusive_option_items,
)
from dnd_forge.models.actor import CompositeActorRecord, RunDiagnostics
from dnd_forge.models.blueprint import ActorRequest, Blueprint
from dnd_forge.models.components import Candidate, ComponentSelection, FeatureCandidates
from dnd_forge.models.enums import FeatureType
from dnd_forge.pipeline.assembly import apply_dynamic_descriptions, build_prototype_token, build_system
from dnd_forge.pipeline.blueprint_factory import BlueprintFactory
from dnd_forge.pipeline.progress import ProgressCallback, ProgressReporter
from dnd_forge.pipeline.spellcasting import SpellcastingBuilder


if TYPE_CHECKING:
    from dnd_forge.backends.base import GenerationBackend, HostEntityStore
    from dnd_forge.compendium.index import ContentIndex
    from dnd_forge.core.cancellation import CancellationToken
    from dnd_forge.media.images import ImageService


logger = get_logger(__name__)


def _checkpoint(cancel: CancellationToken | None, stage: str) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled(stage)


def _leaf_error(group: BaseExceptionGroup) -> BaseException:
    """First failure inside a TaskGroup error, preferring cancellation."""
    cancelled = group.subgroup(CancellationError)
    error: BaseException = (cancelled or group).exceptions[0]
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


class ActorPipeline:
    """Coordinates the agents, the content index and record assembly.

    One pipeline can serve many runs; each run gets its own progress
    reporter and cancellation token.

    Attributes:
        backend: Text generation backend shared by all agents.
        index: Content index shared across runs.
        image_service: Optional portrait and icon fabrication.
        host_store: Default store for adjustment runs.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        index: ContentIndex,
        *,
        image_service: ImageService | None = None,
        host_store: HostEntityStore | None = None,
        settings: Settings | None = None,
        retries: int | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            backend: Text generation backend.
            index: Content index (built lazily on first use).
            image_service: Enables portraits and item icons when given.
            host_store: Store used by ``adjust_actor`` when none is passed.
            settings: Application settings; defaults to the global ones.
            retries: Agent retry budget; defaults to ``ai.max_retries``.
        """
        self.settings = settings or get_settings()
        self.backend = backend
        self.index = index
        self.image_service = image_service
        self.host_store = host_store
        self.retries = self.settings.ai.max_retries if retries is None else retries
        self.candidate_limit = self.settings.compendium.candidate_limit

        self.resolver = ItemResolver(index)
        self.repair_engine = AutomationRepairEngine()
        self.spellcasting = SpellcastingBuilder(index)
        self.factory = BlueprintFactory(index)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ActorPipeline:
        """Wire the pipeline from configuration.

        Text generation goes through OpenRouter, the content index and host
        store through the SQLite database, and images (when a key for the
        configured provider exists) through the filesystem content store.
        """
        from dnd_forge.backends.images import create_image_backend
        from dnd_forge.backends.openrouter import OpenRouterBackend
        from dnd_forge.compendium.index import ContentIndex
        from dnd_forge.media.images import ImageService
        from dnd_forge.storage.database import Database
        from dnd_forge.storage.files import LocalContentStore
        from dnd_forge.storage.stores import SQLiteEntityStore, open_packs

        settings = settings or get_settings()
        database = Database(settings.storage.database_path)
        index = ContentIndex(open_packs(database), settings.compendium.collections)

        image_service = None
        try:
            image_backend = create_image_backend(settings.images, settings.ai)
        except ConfigurationError as exc:
            logger.warning("Image fabrication disabled", reason=exc.message)
        else:
            image_service = ImageService(
                image_backend,
                LocalContentStore(settings.storage.content_root),
                settings.images,
            )

        return cls(
            OpenRouterBackend(settings=settings.ai),
            index,
            image_service=image_service,
            host_store=SQLiteEntityStore(database),
            settings=settings,
        )

    # =========================================================================
    # Runs
    # =========================================================================

    async def generate_actor(
        self,
        request: ActorRequest,
        *,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
        generate_portrait: bool = False,
    ) -> CompositeActorRecord:
        """Generate a new actor.

        Args:
            request: The user's concept and constraints.
            cancel: Cancellation token for the whole run.
            on_progress: Receives ``(percent, message)`` updates.
            generate_portrait: Fabricate a portrait alongside drafting.

        Returns:
            The assembled record; nothing is persisted.

        Raises:
            ExhaustedRetriesError: If an agent never produced valid output.
            CancellationError: If the run was cancelled.
        """
        progress = ProgressReporter(on_progress)
        portrait_task: asyncio.Task[tuple[str | None, str | None]] | None = None
        with run_context("generate"):
            try:
                logger.info("Actor generation started", cr=request.cr, type=request.type, size=request.size.value)

                if generate_portrait and self.image_service is not None:
                    portrait_task = asyncio.create_task(self._fabricate_portrait(request.prompt, cancel))

                progress.report(5, "Drafting blueprint")
                with log_stage(logger, "architect"):
                    blueprint = await self.run_architect(request, cancel=cancel)

                record = await self._build_record(blueprint, progress, cancel)

                if portrait_task is not None:
                    progress.report(95, "Finishing portrait")
                    path, error = await portrait_task
                    if path:
                        record.img = path
                        record.prototype_token["texture"]["src"] = path
                    record.diagnostics.portrait_error = error

                progress.report(100, "Actor ready")
                logger.info(
                    "Actor generation finished",
                    name=record.name,
                    items=len(record.items),
                    reused=record.diagnostics.reused_count,
                    custom=record.diagnostics.custom_count,
                )
                return record
            finally:
                if portrait_task is not None and not portrait_task.done():
                    portrait_task.cancel()
                    with suppress(asyncio.CancelledError, CancellationError):
                        await portrait_task

    async def adjust_actor(
        self,
        actor_id: str,
        prompt: str,
        host_store: HostEntityStore | None = None,
        *,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CompositeActorRecord:
        """Revise an existing actor and replace it in the host store.

        The actor is modified only after the new record is fully assembled.

        Args:
            actor_id: Actor to adjust.
            prompt: What to change.
            host_store: Store holding the actor; defaults to ``self.host_store``.
            cancel: Cancellation token for the whole run.
            on_progress: Receives ``(percent, message)`` updates.

        Returns:
            The record that was applied.

        Raises:
            StorageError: If there is no store or the actor does not exist.
            CancellationError: If the run was cancelled (actor unchanged).
        """
        store = host_store or self.host_store
        if store is None:
            raise StorageError("No host entity store configured for adjustment")

        progress = ProgressReporter(on_progress)
        with run_context("adjust", actor_id=actor_id):
            progress.report(2, "Reading actor")
            actor = await store.get_actor(actor_id)
            if actor is None:
                raise StorageError("Actor not found", details={"actor_id": actor_id})

            original = await self.factory.create_from_actor(actor)
            progress.report(5, "Revising blueprint")
            with log_stage(logger, "adjustment"):
                blueprint = await self.run_adjustment(original, prompt, cancel=cancel)

            record = await self._build_record(blueprint, progress, cancel)

            _checkpoint(cancel, "apply")
            progress.report(95, "Updating actor")
            with log_stage(logger, "apply"):
                await self.apply_record(store, actor_id, actor, record)

            progress.report(100, "Actor adjusted")
            logger.info("Actor adjustment finished", name=record.name, items=len(record.items))
            return record

    async def apply_record(
        self,
        store: HostEntityStore,
        actor_id: str,
        actor: dict[str, Any],
        record: CompositeActorRecord,
    ) -> None:
        """Replace an actor's items and core fields with ``record``.

        Existing items are deleted, then name, system and token settings are
        updated (the token texture is kept), then the new items are created.
        """
        existing = [item["_id"] for item in actor.get("items") or [] if item.get("_id")]
        deleted = await store.delete_entities(actor_id, "Item", existing)
        await store.update_entity(actor_id, record.core_patch())
        created = await store.create_entities(actor_id, "Item", record.items)
        logger.info("Actor replaced", deleted=deleted, created=len(created))

    async def _build_record(
        self,
        blueprint: Blueprint,
        progress: ProgressReporter,
        cancel: CancellationToken | None,
    ) -> CompositeActorRecord:
        """Resolve, fabricate, repair and assemble a record for ``blueprint``."""
        _checkpoint(cancel, "resolve")
        progress.report(20, "Selecting components")
        with log_stage(logger, "quartermaster"):
            selection = await self.run_quartermaster(blueprint, cancel=cancel)

        _checkpoint(cancel, "fabricate")
        progress.report(40, "Fabricating custom items")
        with log_stage(logger, "fabricate"):
            fabricated = await self.run_fabrication(blueprint, selection, cancel=cancel)

        _checkpoint(cancel, "repair")
        progress.report(65, "Resolving and repairing items")
        with log_stage(logger, "repair"):
            referenced = self.resolver.collect_fabricated(fabricated)
            selected = await self.resolver.resolve_selected(selection.selected_uuids)
            repairs = self.run_repair(referenced.items)
        if referenced.spellcasting_text:
            logger.info("Fabricated spellcasting entry dropped", text=referenced.spellcasting_text[:80])

        reused = [entry.item for entry in selected]

        _checkpoint(cancel, "assemble")
        progress.report(80, "Assembling actor")
        return await self.run_builder(
            blueprint,
            reused,
            [result.item for result in repairs],
            multiattack_text=referenced.multiattack_text,
            diagnostics=self._diagnostics(reused, repairs),
        )

    # =========================================================================
    # Stages
    # =========================================================================

    async def run_architect(
        self,
        request: ActorRequest,
        *,
        cancel: CancellationToken | None = None,
    ) -> Blueprint:
        agent = ArchitectAgent(self.backend, retries=self.retries)
        blueprint = await agent.design(request, cancel=cancel)
        logger.info("Blueprint drafted", name=blueprint.name, features=len(blueprint.features))
        return blueprint

    async def run_adjustment(
        self,
        original: Blueprint,
        prompt: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> Blueprint:
        agent = AdjustmentAgent(self.backend, retries=self.retries)
        blueprint = await agent.revise(original, prompt, cancel=cancel)
        logger.info("Blueprint revised", name=blueprint.name, previous=original.name)
        return blueprint

    async def gather_candidates(self, blueprint: Blueprint) -> list[FeatureCandidates]:
        """Pair every feature and equipment entry with its index candidates."""
        components: list[tuple[str, str, str, tuple[str, ...]]] = [
            (feature.name, feature.type.value, feature.description, feature.type.item_types)
            for feature in blueprint.features
        ]
        for entry in blueprint.equipment:
            kind = FeatureType.WEAPON if entry.type == "weapon" else FeatureType.EQUIPMENT
            components.append((entry.name, kind.value, entry.description or entry.name, kind.item_types))

        groups: list[FeatureCandidates] = []
        for name, kind, description, types in components:
            matches = await self.index.search(name, types)
            groups.append(FeatureCandidates(
                name=name,
                type=kind,
                description=description,
                candidates=tuple(
                    Candidate(name=match.name, uuid=match.uuid, type=match.type)
                    for match in matches[: self.candidate_limit]
                ),
            ))
        return groups

    async def run_quartermaster(
        self,
        blueprint: Blueprint,
        *,
        cancel: CancellationToken | None = None,
    ) -> ComponentSelection:
        """Decide which components are reused and which are fabricated."""
        await self.index.ensure_built()
        groups = await self.gather_candidates(blueprint)
        if not groups:
            logger.info("No components to select")
            return ComponentSelection()

        agent = QuartermasterAgent(self.backend, retries=self.retries)
        selection = await agent.select(groups, cancel=cancel)
        logger.info(
            "Components selected",
            selected=len(selection.selected),
            custom_features=len(selection.custom_features),
            custom_equipment=len(selection.custom_equipment),
        )
        return selection

    async def run_fabrication(
        self,
        blueprint: Blueprint,
        selection: ComponentSelection,
        *,
        cancel: CancellationToken | None = None,
    ) -> list[dict[str, Any]]:
        """Fabricate custom features and equipment concurrently.

        Returns:
            Features followed by equipment. When item icons are enabled each
            item also gets a fabricated icon where one could be made.
        """
        blacksmith = BlacksmithAgent(self.backend, retries=self.retries)
        artificer = ArtificerAgent(self.backend, retries=self.retries)

        try:
            async with asyncio.TaskGroup() as group:
                features = group.create_task(
                    blacksmith.fabricate(list(selection.custom_features), blueprint=blueprint, cancel=cancel)
                )
                equipment = group.create_task(
                    artificer.fabricate(list(selection.custom_equipment), blueprint=blueprint, cancel=cancel)
                )
        except BaseExceptionGroup as exc:
            raise _leaf_error(exc) from exc

        items = [*features.result(), *equipment.result()]
        logger.info("Custom items fabricated", count=len(items))

        if items and self.image_service is not None and self.settings.images.generate_item_icons:
            await self._fabricate_icons(items, cancel)
        return items

    def run_repair(self, items: list[dict[str, Any]]) -> list[RepairResult]:
        """Repair custom items; each result carries its findings."""
        results: list[RepairResult] = []
        for item in items:
            result = self.repair_engine.repair(item)
            repaired = result.item
            ensure_activity_ids(repaired)
            ensure_item_has_image(repaired)
            if result.critical:
                logger.warning(
                    "Critical automation warnings",
                    item=repaired.get("name"),
                    warnings=[warning.message for warning in result.critical],
                )
            results.append(result)
        return results

    async def run_builder(
        self,
        blueprint: Blueprint,
        reused_items: list[dict[str, Any]],
        custom_items: list[dict[str, Any]],
        *,
        multiattack_text: str = "",
        diagnostics: RunDiagnostics | None = None,
    ) -> CompositeActorRecord:
        """Assemble the Composite Actor Record.

        Item order is reused items, custom items, the Spellcasting feat and
        its embedded spells. Custom items named "Spellcasting" are dropped in
        favour of the built feat.
        """
        custom = [
            item for item in normalize_mutually_exclusive_option_items(custom_items)
            if str(item.get("name", "")).strip().lower() != "spellcasting"
        ]

        items = [*reused_items, *custom]
        spellcasting = await self.spellcasting.build(blueprint)
        if spellcasting is not None:
            items.extend(spellcasting.items)

        return CompositeActorRecord(
            name=blueprint.name,
            system=build_system(blueprint, multiattack_text),
            items=apply_dynamic_descriptions(items, blueprint.name),
            prototype_token=build_prototype_token(blueprint),
            diagnostics=diagnostics or RunDiagnostics(),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _diagnostics(reused: list[dict[str, Any]], repairs: list[RepairResult]) -> RunDiagnostics:
        warnings = {
            result.item.get("name", ""): [warning.message for warning in result.warnings]
            for result in repairs
            if result.warnings
        }
        return RunDiagnostics(
            reused_count=len(reused),
            custom_count=len(repairs),
            warnings=warnings,
            critical_items=[result.item.get("name", "") for result in repairs if result.critical],
        )

    async def _fabricate_portrait(
        self,
        concept: str,
        cancel: CancellationToken | None,
    ) -> tuple[str | None, str | None]:
        """Best-effort portrait; returns ``(path, error)``."""
        try:
            return await self.image_service.fabricate_portrait(concept, cancel=cancel), None
        except (CancellationError, asyncio.CancelledError):
            raise
        except Exception as exc:
            logger.warning("Portrait fabrication failed", error=str(exc))
            return None, str(exc)

    async def _fabricate_icons(self, items: list[dict[str, Any]], cancel: CancellationToken | None) -> None:
        async def fabricate(item: dict[str, Any]) -> None:
            try:
                item["img"] = await self.image_service.fabricate_item_icon(item, cancel)
            except (CancellationError, asyncio.CancelledError):
                raise
            except Exception as exc:
                logger.warning("Item icon fabrication failed", item=item.get("name"), error=str(exc))

        try:
            async with asyncio.TaskGroup() as group:
                for item in items:
                    group.create_task(fabricate(item))
        except BaseExceptionGroup as exc:
            raise _leaf_error(exc) from exc


__all__ = ["ActorPipeline"]
