# Command line entry points for the position lifecycle core
import asyncio
import json
import sys
from datetime import timedelta

import click
from pydantic import TypeAdapter, ValidationError

from core.config.settings import Settings
from core.logging import configure_logging
from core.trading.lifecycle import PositionLifecycleStatus, get_allowed_transitions
from core.trading.memory_store import InMemoryRecordStore
from core.trading.models import PerformanceRecord, PositionLiquidationInfo, TrackedPosition


def _load_json(path):
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    return data if isinstance(data, list) else [data]


@click.group()
@click.pass_context
def cli(ctx):
    """Position lifecycle CLI"""
    ctx.obj = Settings()
    configure_logging(ctx.obj)


@cli.command("validate-config")
@click.option("--check-redis", is_flag=True, help="Also ping the configured Redis")
@click.pass_obj
def validate_config(settings, check_redis):
    """Validate transition matrix, sync rules and settings"""
    from core.config.validator import ConfigurationValidator

    validator = ConfigurationValidator(settings)
    ok = asyncio.run(validator.validate_all(check_redis=check_redis))
    click.echo(json.dumps(validator.get_validation_summary(), indent=2))
    if not ok:
        sys.exit(1)


@cli.command()
@click.argument("status", type=click.Choice([s.value for s in PositionLifecycleStatus]))
def transitions(status):
    """List statuses reachable from STATUS"""
    for target in sorted(s.value for s in get_allowed_transitions(status)):
        click.echo(target)


@cli.command()
@click.argument("positions_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def reconcile(settings, positions_file):
    """Evaluate sync rules for positions in a JSON file"""
    from services.position_sync.engine import ReconciliationEngine

    try:
        positions = TypeAdapter(list[TrackedPosition]).validate_python(_load_json(positions_file))
    except ValidationError as e:
        raise click.ClickException(f"Invalid positions file: {e}")

    engine = ReconciliationEngine(
        staleness_threshold=timedelta(hours=settings.lifecycle.staleness_threshold_hours)
    )
    result = engine.sweep(positions)
    click.echo(result.model_dump_json(by_alias=True, indent=2, exclude_none=True))


@cli.command()
@click.argument("liquidations_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--redis", "use_redis", is_flag=True, help="Write to the configured Redis instead of memory")
@click.pass_obj
def aggregate(settings, liquidations_file, use_redis):
    """Fold liquidations from a JSON file into performance records"""
    from services.performance.aggregator import AggregatorConfig, PerformanceAggregator

    try:
        liquidations = TypeAdapter(list[PositionLiquidationInfo]).validate_python(
            _load_json(liquidations_file)
        )
    except ValidationError as e:
        raise click.ClickException(f"Invalid liquidations file: {e}")

    async def run():
        if use_redis:
            from core.utils.state_manager import create_redis_record_store
            store = create_redis_record_store(PerformanceRecord, settings)
        else:
            store = InMemoryRecordStore(PerformanceRecord)

        aggregator = PerformanceAggregator(AggregatorConfig.from_settings(store, settings))
        try:
            results = [await aggregator.process_position_liquidation(info) for info in liquidations]
        finally:
            if use_redis:
                await store.close()
        return store, results

    store, results = asyncio.run(run())
    payload = {"results": [r.model_dump(by_alias=True, mode="json", exclude_none=True) for r in results]}
    if isinstance(store, InMemoryRecordStore):
        payload["records"] = store.documents()
    click.echo(json.dumps(payload, indent=2))
    if not all(r.success for r in results):
        sys.exit(1)


if __name__ == "__main__":
    cli()
