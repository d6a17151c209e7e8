"""
Demo: buffered chat, streamed chat and an image job through UnifiedClient.

Reads provider keys from the environment or a .env file.
"""
import asyncio
from typing import List

from uniai import UnifiedClient, Message, JobRequest, RichPrinter, RichStreamPrinter


async def main():
    messages: List[Message] = [
        {"role": "system", "content": "You are a concise assistant."},
        {"role": "user", "content": "introduce yourself in one sentence using markdown syntax."},
    ]

    async with UnifiedClient() as client:
        response = await client.chat({
            "provider": "baidu",
            "model": "ernie-4.0",
            "messages": messages,
            "temperature": 0.7,
            "max_length": 500,
        })
        RichPrinter().print_chat(response)

        stream = await client.chat({
            "provider": "baidu",
            "model": "ernie-4.0",
            "messages": messages,
            "stream": True,
        })
        async with stream:
            await RichStreamPrinter(title="ERNIE").print_stream(stream)

        if client.jobs is not None:
            handle = await client.submit_image_job(JobRequest.from_size("a lighthouse at dusk", 1920, 1080))
            status = await client.poll_image_job(handle.job_id)
            RichPrinter().print_job(status)


if __name__ == "__main__":
    asyncio.run(main())
