"""
Unit tests for EventHandlerRegistry and the @handles decorator.

Tests cover:
- Registration by class and by type tag
- Ordering and duplicate suppression
- Signature validation
- Discovery of decorated methods
"""

import pytest

from ispflow.handlers import (
    EventHandlerRegistry,
    HandlerSignatureError,
    get_handled_event_type,
    handles,
    is_event_handler,
)
from tests.fixtures import SampleEvent, SampleUpdated


class Recorder:
    def __init__(self) -> None:
        self.seen: list[str] = []

    @handles(SampleEvent)
    async def on_sample(self, event: SampleEvent) -> None:
        self.seen.append(f"sample:{event.aggregate_id}")

    @handles(SampleUpdated)
    async def on_updated(self, event: SampleUpdated) -> None:
        self.seen.append(f"updated:{event.value}")

    async def not_a_handler(self, event: SampleEvent) -> None:
        self.seen.append("never")


class TestRegistration:
    def test_register_by_class_and_tag_share_key(self) -> None:
        registry = EventHandlerRegistry()

        async def first(event: SampleEvent) -> None:
            pass

        async def second(event: SampleEvent) -> None:
            pass

        registry.register(SampleEvent, first)
        registry.register("SampleEvent", second)

        handlers = registry.handlers_for(SampleEvent)
        assert [h.handler for h in handlers] == [first, second]

    def test_unknown_type_has_no_handlers(self) -> None:
        registry = EventHandlerRegistry()

        assert registry.handlers_for("Nothing") == ()
        assert "Nothing" not in registry

    def test_duplicate_registration_is_ignored(self) -> None:
        registry = EventHandlerRegistry()

        async def handler(event: SampleEvent) -> None:
            pass

        first = registry.register(SampleEvent, handler)
        second = registry.register(SampleEvent, handler)

        assert first is second
        assert len(registry) == 1

    def test_custom_name(self) -> None:
        registry = EventHandlerRegistry()

        async def handler(event: SampleEvent) -> None:
            pass

        entry = registry.register(SampleEvent, handler, name="audit")

        assert entry.name == "audit"

    def test_unregister(self) -> None:
        registry = EventHandlerRegistry()

        async def handler(event: SampleEvent) -> None:
            pass

        registry.register(SampleEvent, handler)

        assert registry.unregister(SampleEvent, handler) is True
        assert registry.unregister(SampleEvent, handler) is False
        assert registry.registered_types() == []


class TestSignatureValidation:
    def test_sync_handler_rejected(self) -> None:
        registry = EventHandlerRegistry()

        def handler(event: SampleEvent) -> None:
            pass

        with pytest.raises(HandlerSignatureError):
            registry.register(SampleEvent, handler)  # type: ignore[arg-type]

    def test_wrong_arity_rejected(self) -> None:
        registry = EventHandlerRegistry()

        async def handler(event: SampleEvent, extra: int) -> None:
            pass

        with pytest.raises(HandlerSignatureError) as exc_info:
            registry.register(SampleEvent, handler)  # type: ignore[arg-type]

        assert "2 required" in str(exc_info.value)

    def test_optional_extra_parameters_allowed(self) -> None:
        registry = EventHandlerRegistry()

        async def handler(event: SampleEvent, verbose: bool = False) -> None:
            pass

        registry.register(SampleEvent, handler)

        assert len(registry) == 1


class TestDecoratedObjects:
    def test_decorator_marks_function(self) -> None:
        assert is_event_handler(Recorder.on_sample)
        assert get_handled_event_type(Recorder.on_updated) is SampleUpdated
        assert not is_event_handler(Recorder.not_a_handler)

    def test_register_object_discovers_decorated_methods(self) -> None:
        registry = EventHandlerRegistry()
        recorder = Recorder()

        registered = registry.register_object(recorder)

        assert [entry.name for entry in registered] == [
            "Recorder.on_sample",
            "Recorder.on_updated",
        ]
        assert registry.registered_types() == ["SampleEvent", "SampleUpdated"]

    @pytest.mark.asyncio
    async def test_registered_methods_are_bound(self) -> None:
        registry = EventHandlerRegistry()
        recorder = Recorder()
        registry.register_object(recorder)

        for handler in registry.handlers_for(SampleUpdated):
            await handler(SampleUpdated(aggregate_id=1, value=5))

        assert recorder.seen == ["updated:5"]

    def test_register_object_twice_is_idempotent(self) -> None:
        registry = EventHandlerRegistry()
        recorder = Recorder()

        registry.register_object(recorder)
        registry.register_object(recorder)

        assert len(registry) == 2
