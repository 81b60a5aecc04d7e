import pytest

from telemetry import trace_span


@trace_span("tests.add", static_attrs={"test.kind": "sync"}, attr_from_args=lambda a, b: {"test.a": a})
def add(a, b):
    """Add two numbers."""
    return a + b


@trace_span("tests.fetch", attr_from_args=lambda url: {"http.url": url.upper()})
async def fetch(url):
    return f"body of {url}"


@trace_span("tests.fail")
def fail():
    raise ValueError("boom")


def test_sync_wrapper_keeps_result_and_metadata():
    assert add(2, 3) == 5
    assert add.__name__ == "add"
    assert add.__doc__ == "Add two numbers."


@pytest.mark.asyncio
async def test_async_wrapper_awaits_the_function():
    assert await fetch("https://example.com") == "body of https://example.com"


@pytest.mark.asyncio
async def test_broken_attribute_callback_does_not_fail_the_call():
    # url.upper() raises for a non-string argument
    assert await fetch(None) == "body of None"


def test_exceptions_propagate():
    with pytest.raises(ValueError, match="boom"):
        fail()
