"""
Flash HedgeFund 命令行

  rating-service rate -t AAPL,MSFT -a warren_buffett --max-parallel 4
  rating-service serve

退出码：0 至少一只股票获取成功；1 全部获取失败；2 配置错误
"""

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx
import typer
from rich.console import Console

from rating_service import __version__
from rating_service.agents.base import ChatFunc
from rating_service.config import RatingServiceSettings, get_settings
from rating_service.errors import ConfigurationError
from rating_service.services.pipeline import RatingRun, build_pipeline

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FETCH_FAILED = 1
EXIT_CONFIG = 2

app = typer.Typer(
    add_completion=False,
    help="Flash HedgeFund AI – generate stock signals with multiple AI agents",
)


def _split(values: Optional[Sequence[str]]) -> List[str]:
    """同时支持重复选项与逗号分隔"""
    out: List[str] = []
    for v in values or []:
        out.extend(p.strip() for p in v.split(",") if p.strip())
    return out


def render_run(run: RatingRun, console: Console) -> None:
    console.print(f"Fetched {len(run.reports)} stocks in {run.fetch_ms:.0f} ms ({run.fetch_mode})")
    for report in run.reports:
        console.print(f"\n=== {report.ticker} ===")
        if report.context is None:
            console.print(f"✗ {report.ticker}: {report.error}")
            continue
        for name, res in sorted(report.results.items(), key=lambda kv: kv[1].finished_at):
            console.print(f"[{name}] completed in {res.elapsed_ms:.0f} ms")
        for name, res in report.results.items():
            if res.rating is None:
                console.print(f"[{name}] ERROR – {res.error}")
                continue
            r = res.rating
            console.print(f"[{name}] {r.recommendation.value} ({r.confidence:.0%}) – {r.rationale}")


async def run_ratings(
    settings: RatingServiceSettings,
    tickers: Sequence[str],
    agents: Sequence[str],
    max_parallel: int,
    chat: Optional[ChatFunc] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RatingRun:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, transport=transport) as http:
        pipeline = build_pipeline(
            settings, http=http, chat=chat, agent_names=agents, max_parallel=max_parallel
        )
        return await pipeline.rate(tickers)


@app.command("rate")
def rate_cmd(
    tickers: List[str] = typer.Option(..., "--tickers", "-t", help="Stock tickers (repeat or comma separated)"),
    agents: Optional[List[str]] = typer.Option(None, "--agents", "-a", help="Agent names"),
    max_parallel: Optional[int] = typer.Option(None, "--max-parallel", "-p", min=1, help="Max parallel requests"),
):
    """对股票运行所选代理并输出评级"""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    console = Console(highlight=False, markup=False)

    symbols = _split(tickers)
    names = _split(agents) or settings.DEFAULT_AGENTS
    if not symbols:
        console.print("至少需要一个股票代码")
        raise typer.Exit(EXIT_CONFIG)

    try:
        run = asyncio.run(run_ratings(settings, symbols, names, max_parallel or settings.MAX_PARALLEL))
    except ConfigurationError as exc:
        console.print(f"配置错误: {exc}")
        raise typer.Exit(EXIT_CONFIG)

    render_run(run, console)
    if run.resolved == 0:
        raise typer.Exit(EXIT_FETCH_FAILED)


@app.command("serve")
def serve_cmd(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """启动 HTTP 服务"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rating_service.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command("version")
def version_cmd():
    typer.echo(__version__)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
