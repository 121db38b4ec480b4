"""Basic usage of exnest-ai."""

import asyncio

from exnest_ai import ChatOptions, ExnestClient


async def main() -> None:
    """Demonstrate a chat call and the model catalog."""
    # ExnestClient reads EXNEST_* env vars for anything not passed
    client = ExnestClient(retries=2, timeout_ms=15_000)

    resp = await client.chat(
        "openai:gpt-4o-mini",
        [
            {"role": "system", "content": "Answer in one sentence."},
            {"role": "user", "content": "What is the capital of France?"},
        ],
        ChatOptions(temperature=0.2, max_tokens=60),
    )
    if resp.error:
        print(f"Failed [{resp.error.code}]: {resp.error.message}")
        return

    print(f"Answer: {resp.content}")
    if resp.usage:
        print(f"Tokens: {resp.usage.total_tokens}")

    models = await client.get_models_by_provider("openai")
    print(f"OpenAI models: {models.raw}")

    health = await client.health_check()
    print(f"Health: {health.status} ({health.config.api_key})")


if __name__ == "__main__":
    asyncio.run(main())
