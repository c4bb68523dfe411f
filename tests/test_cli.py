"""
Tests for the appsctl CLI and the host registration client.

AWS calls are patched at the appsctl module boundary; the host API is
served by httpx.MockTransport.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from appdeck.apps import CallResponse, DeployType, ProvisioningError, TransportError
from appdeck.cli import HostClient, build_parser, hello_serverless, main
from appdeck.config.schemas import HostSettings
from appdeck.upstream.upaws import DeployAppResult, InitResult

ENV = {
    "AWS_REGION": "us-west-2",
    "APPS_DEPLOY_AWS_ACCESS_KEY": "AKIADEPLOY",
    "APPS_DEPLOY_AWS_SECRET_KEY": "deploy-secret",
    "APPS_INVOKE_AWS_ACCESS_KEY": "AKIAINVOKE",
    "APPS_INVOKE_AWS_SECRET_KEY": "invoke-secret",
}


@pytest.fixture
def deploy_client():
    with patch("appdeck.cli.appsctl.AWSClient.from_credentials") as from_credentials:
        yield from_credentials


@pytest.fixture
def invoke_upstream():
    upstream = MagicMock()
    upstream.roundtrip = AsyncMock(return_value=CallResponse.text_response("PONG").to_json())
    upstream.get_static = AsyncMock(return_value=b"static pong")
    upstream.list_s3_apps = AsyncMock(return_value=["hello-serverless_v1-1-0"])
    with patch("appdeck.cli.appsctl.AWSUpstream.from_credentials", return_value=upstream):
        yield upstream


@pytest.fixture
def deploy_result(lambda_manifest):
    return DeployAppResult(
        manifest=lambda_manifest,
        lambda_arns=["arn:fn"],
        static_arns=["arn:s3:a", "arn:s3:b"],
        manifest_arn="arn:s3:manifest",
        execute_role_arn="arn:role",
        execute_policy_arn="arn:exec-policy",
        invoke_policy_arn="arn:invoke-policy",
        invoke_policy_document='{"Statement": []}',
    )


# =============================================================================
# Parser Tests
# =============================================================================


class TestParser:
    """Tests for argument parsing."""

    def test_init_defaults(self):
        args = build_parser().parse_args(["aws", "init"])

        assert args.create is False
        assert args.user == "apps-invoke"
        assert args.execute_role == "apps-execute-lambda-role"

    def test_deploy_env_is_repeatable(self):
        args = build_parser().parse_args(["aws", "deploy", "b.zip", "--env", "A=1", "--env", "B=2"])

        assert args.bundle == "b.zip"
        assert args.env == ["A=1", "B=2"]

    def test_command_required(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["aws"])

        assert exc_info.value.code == 2

    def test_hello_serverless(self):
        app = hello_serverless()

        assert app.app_id == "hello-serverless"
        assert app.manifest.version == "v1.1.0"
        assert app.deploy_type == DeployType.AWS_LAMBDA


# =============================================================================
# Command Tests
# =============================================================================


class TestCommands:
    """Tests for appsctl commands."""

    def test_missing_region(self, capsys):
        env = {k: v for k, v in ENV.items() if k != "AWS_REGION"}

        assert main(["aws", "init"], env) == 1
        assert "Error: no AWS region was provided" in capsys.readouterr().err

    def test_missing_deploy_credentials(self, capsys):
        env = {"AWS_REGION": "us-west-2"}

        assert main(["aws", "init"], env) == 1
        assert "APPS_DEPLOY_AWS_ACCESS_KEY" in capsys.readouterr().err

    def test_init(self, deploy_client, capsys):
        result = InitResult(
            bucket="apps-bucket",
            user_arn="arn:user",
            group_arn="arn:group",
            policy_arn="arn:policy",
            execute_role_arn="arn:role",
            access_key_id="AKIANEW",
            access_key_secret="new-secret",
        )
        with patch("appdeck.cli.appsctl.initialize_aws", return_value=result) as initialize:
            code = main(["aws", "init", "--create", "--create-access-key"], ENV)

        assert code == 0
        params = initialize.call_args.args[1]
        assert params.should_create is True
        assert params.should_create_access_key is True
        assert params.bucket == "apps-bucket"
        credentials, region = deploy_client.call_args.args
        assert credentials.access_key_id == "AKIADEPLOY"
        assert region == "us-west-2"

        out = capsys.readouterr().out
        assert "arn:user" in out
        assert "export APPS_INVOKE_AWS_ACCESS_KEY='AKIANEW'" in out
        assert "export APPS_INVOKE_AWS_SECRET_KEY='new-secret'" in out

    def test_init_failure(self, deploy_client, capsys):
        with patch(
            "appdeck.cli.appsctl.initialize_aws",
            side_effect=ProvisioningError("user 'apps-invoke' does not exist, use --create to create it"),
        ):
            code = main(["aws", "init"], ENV)

        assert code == 1
        assert "use --create" in capsys.readouterr().err

    def test_deploy(self, deploy_client, deploy_result, capsys):
        with patch("appdeck.cli.appsctl.deploy_app_from_file", return_value=deploy_result) as deploy:
            code = main(["aws", "deploy", "hello.zip", "--update", "--env", "LOG=debug"], ENV)

        assert code == 0
        _, path, params = deploy.call_args.args
        assert path == "hello.zip"
        assert params.should_update is True
        assert params.environment == {"LOG": "debug"}

        out = capsys.readouterr().out
        assert "Created/updated 1 functions in AWS Lambda, 2 static assets in S3" in out
        assert "/apps install listed hello" in out

    def test_deploy_invalid_env(self, deploy_client, capsys):
        with patch("appdeck.cli.appsctl.deploy_app_from_file") as deploy:
            code = main(["aws", "deploy", "hello.zip", "--env", "NOEQUALS"], ENV)

        assert code == 1
        assert "expected KEY=VALUE" in capsys.readouterr().err
        deploy.assert_not_called()

    def test_deploy_install(self, deploy_client, deploy_result):
        env = {**ENV, "APPS_HOST_URL": "http://host"}
        with (
            patch("appdeck.cli.appsctl.deploy_app_from_file", return_value=deploy_result),
            patch("appdeck.cli.appsctl._install", new_callable=AsyncMock) as install,
        ):
            code = main(["aws", "deploy", "hello.zip", "--install"], env)

        assert code == 0
        install.assert_awaited_once_with(deploy_result.manifest, env)

    def test_deploy_install_without_host(self, deploy_client, deploy_result, capsys):
        with patch("appdeck.cli.appsctl.deploy_app_from_file", return_value=deploy_result):
            code = main(["aws", "deploy", "hello.zip", "--install"], ENV)

        assert code == 1
        assert "APPS_HOST_URL" in capsys.readouterr().err

    def test_clean(self, deploy_client, capsys):
        with patch("appdeck.cli.appsctl.clean_aws") as clean:
            code = main(["aws", "clean"], ENV)

        assert code == 0
        assert clean.call_args.args[1] == "AKIAINVOKE"
        assert capsys.readouterr().out.strip() == "OK"

    def test_clean_requires_invoke_key(self, deploy_client, capsys):
        env = {k: v for k, v in ENV.items() if not k.startswith("APPS_INVOKE")}

        with patch("appdeck.cli.appsctl.clean_aws") as clean:
            code = main(["aws", "clean"], env)

        assert code == 1
        assert "APPS_INVOKE_AWS_ACCESS_KEY" in capsys.readouterr().err
        clean.assert_not_called()

    def test_clean_with_only_invoke_access_key(self, deploy_client, capsys):
        env = {k: v for k, v in ENV.items() if k != "APPS_INVOKE_AWS_SECRET_KEY"}

        with patch("appdeck.cli.appsctl.clean_aws") as clean:
            code = main(["aws", "clean"], env)

        assert code == 0
        assert clean.call_args.args[1] == "AKIAINVOKE"

    def test_test_lambda(self, invoke_upstream, capsys):
        assert main(["aws", "test", "lambda"], ENV) == 0

        app, creq = invoke_upstream.roundtrip.call_args.args
        assert app.app_id == "hello-serverless"
        assert creq.call.path == "/ping"
        assert capsys.readouterr().out.strip() == "OK"

    def test_test_lambda_wrong_response(self, invoke_upstream, capsys):
        invoke_upstream.roundtrip.return_value = CallResponse.text_response("nope").to_json()

        assert main(["aws", "test", "lambda"], ENV) == 1
        assert "invalid value received" in capsys.readouterr().err

    def test_test_lambda_transport_error(self, invoke_upstream, capsys):
        invoke_upstream.roundtrip.side_effect = TransportError("invoke failed")

        assert main(["aws", "test", "lambda"], ENV) == 1
        assert "Error: invoke failed" in capsys.readouterr().err

    def test_test_s3(self, invoke_upstream, capsys):
        assert main(["aws", "test", "s3"], ENV) == 0

        assert invoke_upstream.get_static.call_args.args[1] == "test.txt"
        assert capsys.readouterr().out.strip() == "OK"

    def test_test_s3_wrong_content(self, invoke_upstream, capsys):
        invoke_upstream.get_static.return_value = b"something else"

        assert main(["aws", "test", "s3"], ENV) == 1
        assert "static pong" in capsys.readouterr().err

    def test_test_list(self, invoke_upstream, capsys):
        assert main(["aws", "test", "list"], ENV) == 0

        invoke_upstream.list_s3_apps.assert_awaited_once_with("hello")
        assert json.loads(capsys.readouterr().out) == ["hello-serverless_v1-1-0"]

    def test_test_deploy_updates(self, deploy_client, deploy_result, capsys):
        with patch("appdeck.cli.appsctl.deploy_app_from_file", return_value=deploy_result) as deploy:
            code = main(["aws", "test", "deploy", "hello.zip"], ENV)

        assert code == 0
        assert deploy.call_args.args[2].should_update is True
        assert "Success!" in capsys.readouterr().out


# =============================================================================
# HostClient Tests
# =============================================================================


class TestHostClient:
    """Tests for the host registration client."""

    @staticmethod
    def host(handler, **kwargs) -> HostClient:
        client = httpx.AsyncClient(base_url="http://host", transport=httpx.MockTransport(handler))
        return HostClient(HostSettings(url="http://host", token="t0ken"), client=client, **kwargs)

    @pytest.mark.asyncio
    async def test_update_listing(self, lambda_manifest):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async with self.host(handler) as host:
            await host.update_listing(lambda_manifest, DeployType.AWS_LAMBDA)

        assert seen[0].url.path == "/api/v1/update-app-listing"
        body = json.loads(seen[0].content)
        assert body["manifest"]["app_id"] == "hello"
        assert body["add_deploys"] == ["aws_lambda"]

    @pytest.mark.asyncio
    async def test_install(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={})

        async with self.host(handler) as host:
            await host.install("hello", DeployType.AWS_LAMBDA)

        assert seen == [{"app_id": "hello", "deploy_type": "aws_lambda"}]

    @pytest.mark.asyncio
    async def test_default_client_sends_token(self):
        host = HostClient(HostSettings(url="http://host", token="t0ken"))

        client = await host._get_client()

        assert client.headers["Authorization"] == "Bearer t0ken"
        await host.close()

    def test_no_token_no_auth_header(self):
        host = HostClient(HostSettings(url="http://host"))

        assert host._get_auth_headers() == {}

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json={})])
        calls = []

        def handler(request):
            calls.append(request)
            return next(responses)

        async with self.host(handler, retry_delay=0) as host:
            await host.install("hello", DeployType.AWS_LAMBDA)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(403, text="forbidden")

        async with self.host(handler, retry_delay=0) as host:
            with pytest.raises(TransportError) as exc_info:
                await host.install("hello", DeployType.AWS_LAMBDA)

        assert exc_info.value.status_code == 403
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with self.host(handler, max_retries=2, retry_delay=0) as host:
            with pytest.raises(TransportError):
                await host.install("hello", DeployType.AWS_LAMBDA)

        assert len(calls) == 3
