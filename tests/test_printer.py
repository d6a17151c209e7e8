import io

import pytest
from rich.console import Console

from uniai.rich_llm_printer import RichPrinter, RichStreamPrinter
from uniai.types import JobStatus


def _console():
    return Console(file=io.StringIO(), width=100, force_terminal=False)


RESPONSE = {
    "content": "**Paris** is the capital.",
    "prompt_tokens": 5,
    "completion_tokens": 6,
    "total_tokens": 11,
    "model": "ernie-4.0",
    "object": "chat.completion",
}


def test_print_chat():
    console = _console()
    assert RichPrinter(console=console).print_chat(RESPONSE) is RESPONSE
    output = console.file.getvalue()
    assert "Paris" in output
    assert "total_tokens" in output
    assert "ernie-4.0" in output


def test_print_job():
    console = _console()
    RichPrinter(console=console).print_job(JobStatus("42", "failed", 0, failure_reason="banned prompt"))
    output = console.file.getvalue()
    assert "42" in output
    assert "banned prompt" in output


@pytest.mark.asyncio
async def test_print_stream_returns_last_item():
    async def items():
        yield dict(RESPONSE, content="Par", total_tokens=0)
        yield RESPONSE

    printer = RichStreamPrinter(console=_console())
    final = await printer.print_stream(items())

    assert final == RESPONSE
    assert printer.get_full_text() == RESPONSE["content"]
