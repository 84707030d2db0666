"""websynth - web search context synthesis

Simple CLI for answering a prompt from the live web, or for inspecting the
context retrieved for a single query.
"""

import argparse
import asyncio

from websynth.agents.multi_query import MultiQueryOrchestrator
from websynth.models.context import PipelineOptions
from websynth.models.events import SSEEvent
from websynth.services.context_pipeline import get_context_pipeline


class ConsoleProgressSink:
    """Prints pipeline and agent progress as it happens."""

    async def publish(self, event: SSEEvent) -> None:
        event_type = event.event.value
        data = event.data

        if event_type == "queries_generated":
            queries = data.get("queries", [])
            print(f"\n[*] Search queries ({len(queries)}):")
            for i, query in enumerate(queries, 1):
                print(f"  {i}. {query}")

        elif event_type == "query_progress":
            print(f"\n[~] Query {data.get('current_query')}/{data.get('total_queries')}: {data.get('query')}")

        elif event_type == "search_results":
            if data.get("is_streaming"):
                print(f"  [+] {data.get('count')} unique sources so far")
            else:
                print(f"  [+] {data.get('total_results')} search results")

        elif event_type == "action":
            print(f"  [>] {data.get('message', data.get('step'))}")

        elif event_type == "complete":
            print(f"\n[*] Complete in {data.get('runtime_ms')}ms")
            print(f"   Sources: {len(data.get('sources', []))}")
            failed = data.get("failed_queries") or []
            if failed:
                print(f"   Failed queries: {len(failed)}")


async def run_agent(prompt: str, model: str | None = None):
    """Answer the prompt through the multi-query agent."""
    print(f"Prompt: {prompt}")
    print("-" * 50)

    orchestrator = MultiQueryOrchestrator(model=model)
    summary = await orchestrator.run(prompt, ConsoleProgressSink())

    print(f"\n{'='*50}")
    print("ANSWER:")
    print(f"{'='*50}")
    print(summary)


async def run_context(query: str, max_results: int, top_k: int, cleanup: bool):
    """Print the retrieved context for one query."""
    print(f"Query: {query}")
    print("-" * 50)

    options = PipelineOptions.from_settings(
        max_results=max_results,
        top_k=top_k,
        cleanup=cleanup,
        progress_sink=ConsoleProgressSink(),
    )
    outcome = await get_context_pipeline().synthesize(query, options)

    print(f"\n{'='*50}")
    print("CONTEXT:")
    print(f"{'='*50}")
    print(outcome.to_text())


def main():
    parser = argparse.ArgumentParser(description="websynth web context synthesis")
    parser.add_argument("--query", "-q", required=True, help="Prompt or query")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument(
        "--context-only",
        action="store_true",
        help="Run the context pipeline once and print the retrieved context",
    )
    parser.add_argument("--max-results", type=int, default=3, help="Pages to scrape")
    parser.add_argument("--top-k", type=int, default=5, help="Chunks to retrieve")
    parser.add_argument(
        "--keep-collection",
        action="store_true",
        help="Do not delete the vector collection after retrieval",
    )

    args = parser.parse_args()
    if not args.query.strip():
        parser.error("--query must not be blank")

    if args.context_only:
        asyncio.run(run_context(args.query, args.max_results, args.top_k, not args.keep_collection))
    else:
        asyncio.run(run_agent(args.query, args.model))


if __name__ == "__main__":
    main()
