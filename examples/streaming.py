"""Streaming a chat completion with exnest-ai."""

import asyncio

from exnest_ai import ExnestWrapper, StreamError


async def main() -> None:
    """Print tokens as they arrive."""
    exnest = ExnestWrapper()  # EXNEST_API_KEY

    messages = [{"role": "user", "content": "Write a haiku about the sea."}]
    try:
        async with exnest.stream("anthropic:claude-3-haiku", messages, max_tokens=100) as chunks:
            async for chunk in chunks:
                print(chunk.content, end="", flush=True)
    except StreamError as exc:
        print(f"\n{exc}")
    print()


if __name__ == "__main__":
    asyncio.run(main())
