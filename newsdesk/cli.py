"""Command line interface for newsdesk."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a newsletter writer. Respond with a single JSON object only."
)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Newsdesk ingestion CLI.

    Recovers JSON from LLM output and enriches article records with body
    text and images fetched from the web.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=log_level, force=True)
    logger.debug("Debug mode enabled")


def _load_settings(ctx: click.Context):
    from newsdesk.models.settings import Settings

    return Settings(debug=ctx.obj.get("debug", False))


@cli.command()
@click.argument("input_file", type=click.File("r"), default="-")
def recover(input_file) -> None:
    """Recover a JSON value from INPUT_FILE (stdin by default)."""
    from newsdesk.core.json_recovery import recover as recover_json

    outcome = recover_json(input_file.read())
    if outcome.success:
        click.echo(json.dumps(outcome.value, indent=2, ensure_ascii=False))
    else:
        click.echo(f"❌ {outcome.failure_reason}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("url")
@click.option("--title", default="", help="Article title for log output")
@click.pass_context
def fetch(ctx: click.Context, url: str, title: str) -> None:
    """Fetch URL and print the enriched article record as JSON."""

    async def _fetch():
        from newsdesk.fetchers.content_fetcher import ContentFetcher
        from newsdesk.models.content import DocumentRecord

        settings = _load_settings(ctx)
        async with ContentFetcher(settings) as fetcher:
            return await fetcher.fetch_enriched(DocumentRecord(url=url, title=title))

    record = asyncio.run(_fetch())
    click.echo(record.model_dump_json(indent=2))


@cli.command()
@click.argument("records_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output",
    type=click.Path(dir_okay=False, writable=True),
    help="Write updated records here instead of stdout",
)
@click.option("--images-only", is_flag=True, help="Only fill missing images")
@click.pass_context
def backfill(ctx: click.Context, records_file: str, output: str, images_only: bool) -> None:
    """Enrich a JSON list of article records in polite batches."""

    async def _backfill():
        from newsdesk.fetchers.content_fetcher import ContentFetcher
        from newsdesk.models.content import DocumentRecord

        settings = _load_settings(ctx)
        raw_records = json.loads(Path(records_file).read_text(encoding="utf-8"))
        records = [DocumentRecord.model_validate(item) for item in raw_records]
        logger.info(f"📄 Found {len(records)} articles to process")

        async with ContentFetcher(settings) as fetcher:
            return await fetcher.scrape_articles(records, images_only=images_only)

    results = asyncio.run(_backfill())
    with_images = sum(1 for record in results if record.images)
    logger.info(f"✅ {with_images}/{len(results)} articles have images")

    payload = json.dumps(
        [record.model_dump(mode="json") for record in results], indent=2
    )
    if output:
        Path(output).write_text(payload, encoding="utf-8")
        click.echo(f"✅ Wrote {len(results)} records to {output}")
    else:
        click.echo(payload)


@cli.command()
@click.argument("prompt_file", type=click.File("r"))
@click.option("--system", "system_prompt", default=DEFAULT_SYSTEM_PROMPT, help="System prompt")
@click.option(
    "--require",
    multiple=True,
    help="Top-level key the JSON object must contain (repeatable)",
)
@click.pass_context
def generate(ctx: click.Context, prompt_file, system_prompt: str, require) -> None:
    """Generate a JSON object from the prompt in PROMPT_FILE."""

    async def _generate():
        from newsdesk.clients.openrouter import OpenRouterClient

        settings = _load_settings(ctx)
        if not settings.openrouter_api_key:
            raise click.ClickException("OPENROUTER_API_KEY is not configured")

        client = OpenRouterClient(settings.openrouter_api_key, settings=settings)

        def has_required_keys(value) -> bool:
            return isinstance(value, dict) and all(key in value for key in require)

        return await client.generate_structured(
            system_prompt, prompt_file.read(), validate=has_required_keys
        )

    from newsdesk.clients.openrouter import dump_value

    try:
        value = asyncio.run(_generate())
    except click.ClickException:
        raise
    except Exception as e:
        click.echo(f"❌ Generation failed, try again later: {e}", err=True)
        sys.exit(1)
    click.echo(dump_value(value))


if __name__ == "__main__":
    cli()
