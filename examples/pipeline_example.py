import asyncio
import random

import reactivex as rx
from reactivex import operators as ops

from rxapplog import (
    JsonlFileLogSink,
    LogPipeline,
    NamedLogComp,
    PipelineConfig,
    RetryPolicy,
    RxLogCollectorServer,
    WebSocketLogSink,
    WSConnectionConfig,
    log_redirect_to,
)
from rxapplog.telemetry import get_default_logger_provider

# this example ships application logs from a client to a collector that stores
# them in a JSON-lines file. Run the collector first, then the client.


def collector():
    server = RxLogCollectorServer(
        WSConnectionConfig("::", 8765),
        store=JsonlFileLogSink("logs/app.jsonl", rotate_interval=10_000),
        logger_provider=get_default_logger_provider(),
    )
    server.subscribe(lambda row: print(f"stored [{row['level']}] {row['message']}"))

    async def serve_forever():
        while True:
            await asyncio.sleep(1)

    try:
        asyncio.run(serve_forever())
    except KeyboardInterrupt:
        print("\nKeyboard Interrupt.")
    finally:
        server.on_completed()


def client():
    async def run_client():
        pipeline = LogPipeline(
            WebSocketLogSink(WSConnectionConfig("localhost", 8765)),
            PipelineConfig(flush_interval=2.0, retry=RetryPolicy(max_retries=20)),
            location=lambda: "/deals",
            logger_provider=get_default_logger_provider(),
        )
        pipeline.subscribe(lambda outcome: print(f"flush: {outcome}"))

        quotes = NamedLogComp("quotes")
        quotes.set_super(pipeline)

        # a data stream carrying log entries next to prices
        def price_or_log(i: int):
            if i % 5 == 4:
                quotes.log(f"Quote {i} skipped", "warn", {"tick": i})
                return None
            return round(100 + random.uniform(-1, 1), 2)

        rx.interval(0.5).pipe(
            ops.map(price_or_log),
            ops.filter(lambda price: price is not None),
            log_redirect_to(pipeline),
        ).subscribe(lambda price: pipeline.info("Price", {"value": price}))

        try:
            while True:
                await asyncio.sleep(1)
        finally:
            await pipeline.aclose()

    try:
        asyncio.run(run_client())
    except KeyboardInterrupt:
        print("\nKeyboard Interrupt.")


if __name__ == "__main__":
    import sys

    if sys.argv[1:] == ["collector"]:
        collector()
    else:
        client()
