"""SearchMate - conversational web search

Simple CLI for running one search turn.
"""

import argparse
import asyncio

from searchmate.agents.orchestrator import ConversationOrchestrator, TurnInput


async def run_search(query: str, route: str | None = None, skip: bool = False):
    """Run one turn for the given query and print its events."""
    print(f"Search query: {query}")
    print("-" * 50)

    orchestrator = ConversationOrchestrator()
    answer_started = False

    async for event in orchestrator.submit(TurnInput(input=query, skip=skip, route=route)):
        event_type = event.event.value
        data = event.data

        if event_type == "inquiry":
            inquiry = data.get("inquiry", {})
            print(f"\n[?] {inquiry.get('question', '')}")
            for option in inquiry.get("options", []):
                print(f"  - {option.get('label', option.get('value', ''))}")

        elif event_type == "tool_result":
            results = data.get("result", {}) or {}
            status = "error" if data.get("is_error") else f"{len(results.get('results', []))} results"
            print(f"\n[~] {data.get('tool')}: {status}")

        elif event_type in ("answer_delta", "answer_detail_delta"):
            if not answer_started:
                print(f"\n{'='*50}")
                answer_started = True
            print(".", end="", flush=True)

        elif event_type == "answer_complete":
            print(f"\n\n{data.get('text', '')}")

        elif event_type == "related":
            print("\n[*] Related:")
            for item in data.get("items", []):
                print(f"  - {item.get('query', '')}")

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}")

        elif event_type == "turn_complete":
            print(f"\n[*] Turn {data.get('outcome')} (saved: {data.get('persisted')})")


def main():
    parser = argparse.ArgumentParser(description="SearchMate conversational search")
    parser.add_argument("--query", "-q", required=True, help="Search query")
    parser.add_argument("--from", dest="route", help="Search route: web, semantic, or empty for general")
    parser.add_argument("--skip", action="store_true", help="Skip the clarifying-question step")

    args = parser.parse_args()

    asyncio.run(run_search(args.query, args.route, args.skip))


if __name__ == "__main__":
    main()
