import asyncio

import httpx
import pytest

from app.services.shell import ShellClient, ShellFetchError

from conftest import SHELL_HTML


def make_client(settings, handler, **overrides):
    return ShellClient(settings.model_copy(update=overrides), transport=httpx.MockTransport(handler))


class TestShellClient:

    @pytest.mark.asyncio
    async def test_fetch_returns_body(self, settings, shell_origin):
        client = make_client(settings, shell_origin.handler)
        assert await client.fetch("kia-sportage-2020") == SHELL_HTML
        assert str(shell_origin.requests[0].url) == "https://shell.test/Coches/detalle-app.html?id=kia-sportage-2020"

    @pytest.mark.asyncio
    async def test_missing_id_sends_empty_param(self, settings, shell_origin):
        client = make_client(settings, shell_origin.handler)
        await client.fetch(None)
        assert shell_origin.requests[0].url.params["id"] == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [301, 404, 500])
    async def test_non_2xx_is_an_error(self, settings, shell_origin, status):
        shell_origin.status = status
        client = make_client(settings, shell_origin.handler)
        with pytest.raises(ShellFetchError, match=str(status)):
            await client.fetch("x")

    @pytest.mark.asyncio
    async def test_transport_error(self, settings, shell_origin):
        shell_origin.error = httpx.ConnectError("dns failure")
        client = make_client(settings, shell_origin.handler)
        with pytest.raises(ShellFetchError):
            await client.fetch("x")

    @pytest.mark.asyncio
    async def test_timeout(self, settings, shell_origin):
        shell_origin.error = httpx.ConnectTimeout("slow origin")
        client = make_client(settings, shell_origin.handler)
        with pytest.raises(ShellFetchError, match="Timed out"):
            await client.fetch("x")

    @pytest.mark.asyncio
    async def test_no_cache_by_default(self, settings, shell_origin):
        client = make_client(settings, shell_origin.handler)
        await client.fetch("x")
        await client.fetch("x")
        assert len(shell_origin.requests) == 2

    @pytest.mark.asyncio
    async def test_cache_is_shared_across_listings(self, settings, shell_origin):
        client = make_client(settings, shell_origin.handler, shell_cache_seconds=60)
        assert await client.fetch("x") == SHELL_HTML
        assert await client.fetch("y") == SHELL_HTML
        await client.fetch(None)
        assert len(shell_origin.requests) == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, settings, shell_origin):
        client = make_client(settings, shell_origin.handler, shell_cache_seconds=60)
        pages = await asyncio.gather(*(client.fetch(f"car-{n}") for n in range(5)))
        assert pages == [SHELL_HTML] * 5
        assert len(shell_origin.requests) == 1

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, settings, shell_origin):
        client = make_client(settings, shell_origin.handler, shell_cache_seconds=60)
        shell_origin.status = 500
        with pytest.raises(ShellFetchError):
            await client.fetch("x")
        shell_origin.status = 200
        assert await client.fetch("x") == SHELL_HTML
