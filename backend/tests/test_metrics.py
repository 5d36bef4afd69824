from __future__ import annotations

import pytest

from app.monitoring.metrics import room_commands_total
from app.monitoring.registry import MetricsRegistry
from watchparty.rooms import SessionController


def test_render_uses_prometheus_text_format() -> None:
    registry = MetricsRegistry()
    commands = registry.counter("demo_commands_total", "Commands.", label_names=("command",))
    active = registry.gauge("demo_active", "Active things.")

    commands.labels("join").inc()
    commands.labels("join").inc(2)
    commands.labels('say "hi"').inc(0.5)
    active.set(3)
    active.dec()

    assert registry.render().splitlines() == [
        "# HELP demo_active Active things.",
        "# TYPE demo_active gauge",
        "demo_active 2",
        "# HELP demo_commands_total Commands.",
        "# TYPE demo_commands_total counter",
        'demo_commands_total{command="join"} 3',
        'demo_commands_total{command="say \\"hi\\""} 0.5',
    ]


def test_untouched_metric_renders_zero() -> None:
    registry = MetricsRegistry()
    registry.counter("idle_total", "Never incremented.", label_names=("kind",))

    assert registry.render().endswith("idle_total 0\n")


def test_label_and_type_validation() -> None:
    registry = MetricsRegistry()
    counter = registry.counter("checked_total", "Checked.", label_names=("a", "b"))

    with pytest.raises(ValueError):
        counter.labels("only-one")
    with pytest.raises(ValueError):
        counter.labels("x", "y").inc(-1)
    with pytest.raises(AttributeError):
        counter.labels("x", "y").set(4)
    with pytest.raises(ValueError):
        registry.counter("checked_total", "Duplicate.")


@pytest.mark.anyio("asyncio")
async def test_controller_records_command_outcomes(controller: SessionController) -> None:
    room_commands_total._samples.clear()

    room = await controller.create_room("u-host", "Host")
    await controller.join_room("u-a", "A", room.id)
    await controller.join_room("u-b", "B", "room_missing")

    assert room_commands_total.value("create", "ok") == 1
    assert room_commands_total.value("join", "ok") == 1
    assert room_commands_total.value("join", "room_not_found") == 1
