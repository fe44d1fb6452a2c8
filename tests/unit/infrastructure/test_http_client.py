"""Tests for the httpx remote client, using httpx.MockTransport."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable

import httpx
import pytest

from fxsync.application.commands.push_artifact import ReconciliationEngine
from fxsync.config.settings import Settings
from fxsync.core.exceptions import (
    ConfigurationError,
    DuplicateNameConflict,
    RemoteError,
    StaleVersionConflict,
    UploadRejected,
)
from fxsync.domain.enums import ArtifactType, PushState, RemoteErrorCode
from fxsync.domain.ports import RemoteArtifactClient
from fxsync.infrastructure.remote.http_client import HttpRemoteArtifactClient


def _ok(value=None, notice: str | None = None) -> dict:
    body = {"Result": {"StatusCode": 0}, "Value": value}
    if notice:
        body["Error"] = {"Message": notice}
    return body


def _fail(message: str) -> dict:
    return {"Result": {"StatusCode": 1, "FailureMessage": message}, "Value": None}


class Recorder:
    """MockTransport handler returning queued JSON bodies and keeping requests."""

    def __init__(self, *responses: dict | Callable[[httpx.Request], httpx.Response]):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if callable(response):
            return response(request)
        return httpx.Response(200, json=response)

    def body(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(domain="fx.example.com", certificate="cert-123", project_root=tmp_path)


def _client(settings: Settings, recorder: Recorder) -> HttpRemoteArtifactClient:
    return HttpRemoteArtifactClient(settings, httpx.AsyncClient(transport=httpx.MockTransport(recorder)))


class TestTransport:
    def test_satisfies_port(self, settings):
        assert isinstance(_client(settings, Recorder()), RemoteArtifactClient)

    @pytest.mark.asyncio
    async def test_url_headers_and_trace_id(self, settings):
        recorder = Recorder(_ok({"function": {"api_name": "calcTax__c"}}))
        client = _client(settings, recorder)

        await client.fetch_by_name(ArtifactType.FUNCTION, "calcTax__c")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.host == "fx.example.com"
        assert request.url.scheme == "https"
        assert request.url.path == "/FHH/EMDHFUNC/biz/find"
        assert request.url.params["traceId"].startswith("fx-cli-")
        assert request.headers["Authorization"] == "cert-123"
        assert recorder.body() == {
            "api_name": "calcTax__c",
            "binding_object_api_name": "NONE",
            "type": "function",
        }

    @pytest.mark.asyncio
    async def test_missing_auth_raises(self, tmp_path):
        client = _client(Settings(project_root=tmp_path), Recorder())
        with pytest.raises(ConfigurationError):
            await client.list_artifacts(ArtifactType.FUNCTION)

    @pytest.mark.asyncio
    async def test_http_404_is_not_found(self, settings):
        client = _client(settings, Recorder(lambda r: httpx.Response(404, text="no such page")))
        with pytest.raises(RemoteError) as exc:
            await client.fetch_by_name(ArtifactType.FUNCTION, "calcTax__c")
        assert exc.value.code is RemoteErrorCode.NOT_FOUND
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_http_500_is_http_error(self, settings):
        client = _client(settings, Recorder(lambda r: httpx.Response(500, text="boom")))
        with pytest.raises(RemoteError) as exc:
            await client.list_artifacts(ArtifactType.FUNCTION)
        assert exc.value.code is RemoteErrorCode.HTTP

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        def explode(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(settings, Recorder(explode))
        with pytest.raises(RemoteError) as exc:
            await client.list_artifacts(ArtifactType.FUNCTION)
        assert exc.value.code is RemoteErrorCode.TRANSPORT

    @pytest.mark.asyncio
    async def test_business_not_found(self, settings):
        client = _client(settings, Recorder(_fail("未查询到该自定义函数")))
        with pytest.raises(RemoteError) as exc:
            await client.fetch_by_name(ArtifactType.FUNCTION, "calcTax__c")
        assert exc.value.code is RemoteErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_malformed_json(self, settings):
        client = _client(settings, Recorder(lambda r: httpx.Response(200, text="<html>")))
        with pytest.raises(RemoteError):
            await client.list_artifacts(ArtifactType.FUNCTION)


class TestReads:
    @pytest.mark.asyncio
    async def test_list_functions(self, settings):
        recorder = Recorder(_ok({"list": [{"apiName": "a__c", "updateTime": 1}, {"apiName": "b__c"}]}))
        items = await _client(settings, recorder).list_artifacts(ArtifactType.CLASS)

        assert [i.api_name for i in items] == ["a__c", "b__c"]
        assert recorder.requests[0].url.path == "/FHH/EMDHFUNC/biz/download"
        assert recorder.body() == {
            "bindingObjectApiName": "NONE",
            "pageNumber": 1,
            "pageSize": 2000,
            "type": "class",
        }

    @pytest.mark.asyncio
    async def test_list_components(self, settings):
        recorder = Recorder(_ok({"components": [{"apiName": "orderCard__c", "name": "orderCard"}]}))
        items = await _client(settings, recorder).list_artifacts(ArtifactType.COMPONENT)
        assert items[0].name == "orderCard"
        assert recorder.requests[0].url.path == "/FHH/EMDHCompBuild/VscodeExtension/downloadCode"
        assert recorder.body() == {"type": "component"}

    @pytest.mark.asyncio
    async def test_fetch_function_snake_case(self, settings):
        recorder = Recorder(_ok({"function": {
            "id": "f1",
            "api_name": "calcTax__c",
            "function_name": "calcTax",
            "body": "return 1",
            "update_time": 150,
        }}))
        d = await _client(settings, recorder).fetch_by_name(ArtifactType.FUNCTION, "calcTax__c")
        assert d.update_time == 150
        assert d.content == "return 1"

    @pytest.mark.asyncio
    async def test_fetch_empty_value_is_not_found(self, settings):
        client = _client(settings, Recorder(_ok({})))
        with pytest.raises(RemoteError) as exc:
            await client.fetch_by_name(ArtifactType.FUNCTION, "calcTax__c")
        assert exc.value.code is RemoteErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_fetch_component_matches_api_name(self, settings):
        recorder = Recorder(_ok({"components": [
            {"apiName": "other__c", "name": "other"},
            {"apiName": "orderCard__c", "name": "orderCard"},
        ]}))
        d = await _client(settings, recorder).fetch_by_name(ArtifactType.COMPONENT, "orderCard__c")
        assert d.name == "orderCard"
        assert recorder.body() == {"type": "component", "apiName": "orderCard__c"}

    @pytest.mark.asyncio
    async def test_download_file(self, settings):
        encoded = base64.b64encode(b"<template/>").decode()
        recorder = Recorder(_ok({"base64String": encoded}))
        data = await _client(settings, recorder).download_file("/n/1")
        assert data == b"<template/>"
        assert recorder.body() == {"nPath": "/n/1"}


class TestWrites:
    @pytest.mark.asyncio
    async def test_upload_file_returns_temp_name(self, settings, tmp_path):
        path = tmp_path / "index.vue"
        path.write_bytes(b"<template/>")
        recorder = Recorder(_ok({"TempFileName": "tmp_123"}))

        assert await _client(settings, recorder).upload_file(path) == "tmp_123"
        assert recorder.body() == {
            "fileName": "index.vue",
            "base64String": base64.b64encode(b"<template/>").decode(),
        }

    @pytest.mark.asyncio
    async def test_analyze_report(self, settings):
        recorder = Recorder(_ok({"success": False, "violations": [{"priority": 9, "message": "npe"}]}))
        report = await _client(settings, recorder).analyze({"api_name": "calcTax__c"})

        assert not report.success
        assert report.serious_violation.message == "npe"
        assert recorder.body() == {"function": {"api_name": "calcTax__c"}}

    @pytest.mark.asyncio
    async def test_analyze_failure_message(self, settings):
        report = await _client(settings, Recorder(_fail("analyzer down"))).analyze({})
        assert report.failure_message == "analyzer down"

    @pytest.mark.asyncio
    async def test_compile_check(self, settings):
        client = _client(settings, Recorder(_ok(), _fail("unexpected token")))
        assert (await client.compile_check({})).ok
        assert (await client.compile_check({})).failure_message == "unexpected token"

    @pytest.mark.asyncio
    async def test_upload_success_with_notice(self, settings):
        recorder = Recorder(_ok({"id": "f1", "updateTime": 200}, notice="token expires soon"))
        result = await _client(settings, recorder).upload(ArtifactType.FUNCTION, {"updateTime": 150})

        assert result.id == "f1"
        assert result.update_time == 200
        assert result.notice == "token expires soon"
        assert recorder.requests[0].url.path == "/FHH/EMDHFUNC/biz/upload"

    @pytest.mark.asyncio
    async def test_component_upload_is_wrapped(self, settings):
        recorder = Recorder(_ok({}))
        result = await _client(settings, recorder).upload(ArtifactType.COMPONENT, {"apiName": "x__c", "updateTime": 0})

        assert result.id is None
        assert result.update_time is None
        assert recorder.requests[0].url.path == "/FHH/EMDHCompBuild/VscodeExtension/uploadCode"
        assert recorder.body() == {"component": {"apiName": "x__c", "updateTime": 0}}

    @pytest.mark.asyncio
    async def test_upload_stale_version(self, settings):
        client = _client(settings, Recorder(_fail("当前代码在线上有更高版本")))
        with pytest.raises(StaleVersionConflict) as exc:
            await client.upload(ArtifactType.FUNCTION, {"updateTime": 100})
        assert exc.value.update_time == 100

    @pytest.mark.asyncio
    async def test_upload_duplicate_name(self, settings):
        client = _client(settings, Recorder(_fail("已存在相同的apiName")))
        with pytest.raises(DuplicateNameConflict):
            await client.upload(ArtifactType.COMPONENT, {"updateTime": 0})

    @pytest.mark.asyncio
    async def test_upload_other_rejection(self, settings):
        client = _client(settings, Recorder(_fail("语法错误")))
        with pytest.raises(UploadRejected) as exc:
            await client.upload(ArtifactType.FUNCTION, {"updateTime": 0})
        assert not isinstance(exc.value, (StaleVersionConflict, DuplicateNameConflict))


class TestMalformedValues:
    @pytest.mark.asyncio
    async def test_bad_violation_priority(self, settings):
        client = _client(settings, Recorder(_ok({"violations": [{"priority": "high"}]})))
        with pytest.raises(RemoteError) as exc:
            await client.analyze({"api_name": "calcTax__c"})
        assert exc.value.code is RemoteErrorCode.REJECTED
        assert "/FHH/EMDHFUNC/runtime/analyze" in exc.value.message

    @pytest.mark.asyncio
    async def test_non_numeric_upload_time(self, settings):
        client = _client(settings, Recorder(_ok({"id": "f1", "updateTime": "soon"})))
        with pytest.raises(RemoteError) as exc:
            await client.upload(ArtifactType.FUNCTION, {"updateTime": 0})
        assert exc.value.code is RemoteErrorCode.REJECTED

    @pytest.mark.asyncio
    async def test_bad_descriptor_in_list(self, settings):
        client = _client(settings, Recorder(_ok({"list": [{"api_name": "a__c", "updateTime": "soon"}]})))
        with pytest.raises(RemoteError) as exc:
            await client.list_artifacts(ArtifactType.FUNCTION)
        assert exc.value.code is RemoteErrorCode.REJECTED

    @pytest.mark.asyncio
    async def test_bad_descriptor_in_find(self, settings):
        client = _client(settings, Recorder(_ok({"function": {"api_name": "a__c", "updateTime": "soon"}})))
        with pytest.raises(RemoteError) as exc:
            await client.fetch_by_name(ArtifactType.FUNCTION, "a__c")
        assert exc.value.code is RemoteErrorCode.REJECTED

    @pytest.mark.asyncio
    async def test_bad_base64(self, settings):
        client = _client(settings, Recorder(_ok({"base64String": "not base64!"})))
        with pytest.raises(RemoteError):
            await client.download_file("/n/1")


class TestComponentLookup:
    @pytest.mark.asyncio
    async def test_non_matching_component_is_not_found(self, settings):
        recorder = Recorder(_ok({"components": [{"apiName": "other__c", "name": "other"}]}))
        with pytest.raises(RemoteError) as exc:
            await _client(settings, recorder).fetch_by_name(ArtifactType.COMPONENT, "orderCard__c")
        assert exc.value.code is RemoteErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_inexact_lookup_falls_back_to_first(self, settings):
        recorder = Recorder(_ok({"components": [{"apiName": "other__c", "name": "other"}]}))
        d = await _client(settings, recorder).fetch_by_name(ArtifactType.COMPONENT, "orderCard__c", exact=False)
        assert d.name == "other"


class TestEngineOverHttp:
    @pytest.mark.asyncio
    async def test_malformed_analysis_fails_only_the_push(self, settings, ledger, tmp_path):
        recorder = Recorder(
            _fail("未查询到该自定义函数"),
            _ok({"violations": [{"priority": "high"}]}),
        )
        engine = ReconciliationEngine(_client(settings, recorder), lambda _dir: ledger, tmp_path)
        source = tmp_path / "calcTax.groovy"
        source.write_text("return 1", encoding="utf-8")

        outcome = await engine.push_file(source, ArtifactType.FUNCTION)

        assert not outcome.success
        assert outcome.state is PushState.FAILED
        assert "Malformed value" in outcome.message
        assert ledger.records == {}
