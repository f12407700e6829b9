#!/usr/bin/env python3
"""
Analyze one chat export from the command line.

Usage:
    python analyze.py chat.txt --purpose "요즘 대화가 줄어든 이유"
    python analyze.py chat.txt --purpose "..." --relationship 친구 --output report.json
    python analyze.py chat.txt --segments-only     # preview session batches, no API calls
    python analyze.py chat.txt --purpose "..." --simple
"""

import asyncio
import json
import sys
import time
from pathlib import Path

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from config import config
from chatlens.console import console
from chatlens.errors import InputValidationError
from chatlens.models import AnalysisRequest, JobStatus
from chatlens.parser import parse_chat
from chatlens.pipeline import AnalysisPipeline
from chatlens.providers import Providers
from chatlens.segmentation import segment_by_sessions


def show_segments(content: str):
    parsed = parse_chat(content)
    if not parsed.messages:
        console.print("[bold red]ERROR:[/bold red] no chat messages recognized")
        sys.exit(1)

    batches = segment_by_sessions(parsed.messages, config.segmentation.target_size,
                                  config.segmentation.max_size, quiet=True)
    table = Table(title=f"{len(parsed.messages):,} messages → {len(batches)} batches")
    table.add_column("Batch", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("From")
    table.add_column("To")
    for batch in batches:
        table.add_row(str(batch.batch_id), f"{batch.count:,}",
                      batch.messages[0].timestamp, batch.messages[-1].timestamp)
    console.print(table)


def show_job(job):
    summary = Table(show_header=False, box=None, padding=(0, 2))
    for key, value in (job.stats or {}).items():
        summary.add_row(f"{key}:", str(value))
    summary.add_row("pipeline:", job.pipeline_path or "-")
    if job.fallback_reason:
        summary.add_row("fallback reason:", Text(job.fallback_reason, style="yellow"))
    console.print(summary)
    console.print()

    for insight in job.insights or []:
        console.print(Panel(Text(insight.description), title=Text(insight.title), title_align="left"))


async def main():
    import argparse

    parser = argparse.ArgumentParser(description="Relationship-communication analysis of a KakaoTalk export")
    parser.add_argument('file', help='Exported chat (.txt)')
    parser.add_argument('--purpose', default='', help='What you want to learn from the analysis')
    parser.add_argument('--relationship', default=config.relationship.default_type,
                        help=f'Primary relationship (default: {config.relationship.default_type})')
    parser.add_argument('--secondary', action='append', default=[],
                        help='Additional relationship label (repeatable)')
    parser.add_argument('--output', help='Write the final job record as JSON')
    parser.add_argument('--segments-only', action='store_true',
                        help='Only show session batches, no API calls')
    parser.add_argument('--simple', action='store_true',
                        help='Skip the full pipeline and use one analysis call')

    args = parser.parse_args()

    path = Path(args.file)
    if not path.exists():
        console.print(f"[bold red]ERROR:[/bold red] {path} not found")
        sys.exit(1)
    content = path.read_text(encoding='utf-8')

    if args.segments_only:
        show_segments(content)
        return

    providers = Providers.from_config(config.providers)
    if args.simple:
        providers.classification = None
    if providers.simple_analysis is None:
        env = config.providers.simple_analysis.api_key_env
        console.print(f"[bold red]ERROR:[/bold red] {env} not set")
        sys.exit(1)

    pipeline = AnalysisPipeline(providers)
    request = AnalysisRequest(
        file_name=path.name,
        file_content=content,
        file_size=path.stat().st_size,
        primary_relationship=args.relationship,
        secondary_relationships=args.secondary,
        user_purpose=args.purpose,
    )

    started = time.time()
    try:
        job = pipeline.submit(request)
    except InputValidationError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    route = "full pipeline" if providers.full_pipeline_available else "simplified path"
    with console.status(f"[cyan]Analyzing {job.file_name} ({route})..."):
        job = await pipeline.wait(job.id)

    console.print("\n" + "=" * 70)
    if job.status == JobStatus.COMPLETED:
        console.print(f"[bold green]✓ Analysis complete[/bold green] in {time.time() - started:.0f}s")
    else:
        console.print(Text.assemble(("✗ Analysis failed: ", "bold red"), job.error or ""))
    console.print("=" * 70 + "\n")

    show_job(job)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(job.model_dump(mode='json', by_alias=True), f, indent=2, ensure_ascii=False)
        console.print(f"\n💾 Saved to: {args.output}")

    if job.status != JobStatus.COMPLETED:
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == '__main__':
    run()
