"""
appsctl: operator CLI for AWS-deployed Apps.

    appsctl aws init [--create] [--create-access-key]
    appsctl aws deploy BUNDLE [--update] [--install] [--env KEY=VALUE ...]
    appsctl aws clean
    appsctl aws test {s3,list,lambda,deploy BUNDLE}

Settings come from the environment (see appdeck.config.env). Failures
print "Error: <message>" to stderr and exit non-zero.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping

from appdeck.apps.app import App
from appdeck.apps.call import CallRequest, CallResponse, decode_call_response
from appdeck.apps.errors import AppsError, ConfigurationError, ValidationError
from appdeck.apps.manifest import (
    AWSLambdaDeploy,
    AWSLambdaFunction,
    Deploy,
    DeployType,
    Manifest,
)
from appdeck.config.env import (
    INVOKE_ACCESS_ENV_VAR,
    INVOKE_SECRET_ENV_VAR,
    load_aws_settings,
    load_host_settings,
    require_deploy_credentials,
    require_invoke_credentials,
)
from appdeck.config.schemas import AWSSettings
from appdeck.upstream.upaws import (
    DEFAULT_EXECUTE_ROLE_NAME,
    DEFAULT_GROUP_NAME,
    DEFAULT_POLICY_NAME,
    DEFAULT_USER_NAME,
    AWSClient,
    AWSUpstream,
    DeployAppParams,
    InitParams,
    clean_aws,
    deploy_app_from_file,
    initialize_aws,
)

from .host import HostClient

logger = logging.getLogger("appsctl")


def hello_serverless() -> App:
    """The example App the `aws test` commands run against."""
    return App(
        deploy_type=DeployType.AWS_LAMBDA,
        manifest=Manifest(
            app_id="hello-serverless",
            version="v1.1.0",
            deploy=Deploy(
                aws_lambda=AWSLambdaDeploy(
                    functions=[
                        AWSLambdaFunction(
                            path="/",
                            name="hello-serverless",
                            handler="bootstrap",
                            runtime="provided.al2023",
                        )
                    ]
                )
            ),
        ),
    )


# =============================================================================
# Clients
# =============================================================================


def _deploy_client(settings: AWSSettings) -> AWSClient:
    credentials = require_deploy_credentials(settings)
    return AWSClient.from_credentials(credentials, settings.region)


def _test_upstream(settings: AWSSettings) -> AWSUpstream:
    credentials = require_invoke_credentials(settings)
    return AWSUpstream.from_credentials(credentials, settings.region, settings.bucket)


def _parse_env(pairs: list[str]) -> dict[str, str]:
    environment = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"invalid --env value {pair!r}, expected KEY=VALUE")
        environment[key] = value
    return environment


# =============================================================================
# Commands
# =============================================================================


def cmd_init(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    settings = load_aws_settings(environ)
    client = _deploy_client(settings)

    out = initialize_aws(
        client,
        InitParams(
            bucket=settings.bucket,
            user=args.user,
            group=args.group,
            policy=args.policy,
            execute_role=args.execute_role,
            should_create=args.create,
            should_create_access_key=args.create_access_key,
        ),
    )

    print("Ready to deploy AWS Lambda Apps!\n")
    print(f"User:\t{out.user_arn}")
    print(f"Group:\t{out.group_arn}")
    print(f"Policy:\t{out.policy_arn}")
    print(f"Role:\t{out.execute_role_arn}")
    print(f"Bucket:\t{out.bucket}")

    if args.create_access_key:
        print("\nPlease store the Access Key securely, it will not be viewable again.\n")
        print(f"export {INVOKE_ACCESS_ENV_VAR}='{out.access_key_id}'")
        print(f"export {INVOKE_SECRET_ENV_VAR}='{out.access_key_secret}'")
    return 0


async def _install(manifest: Manifest, environ: Mapping[str, str]) -> None:
    async with HostClient(load_host_settings(environ)) as host:
        await host.update_listing(manifest, DeployType.AWS_LAMBDA)
        await host.install(manifest.app_id, DeployType.AWS_LAMBDA)


def cmd_deploy(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    settings = load_aws_settings(environ)
    client = _deploy_client(settings)

    out = deploy_app_from_file(
        client,
        args.bundle,
        DeployAppParams(
            bucket=settings.bucket,
            invoke_policy_name=args.policy,
            execute_role_name=args.execute_role,
            should_update=args.update,
            environment=_parse_env(args.env),
        ),
    )

    if args.install:
        asyncio.run(_install(out.manifest, environ))

    name = out.manifest.display_name or out.manifest.app_id
    print(f"\n{name!r} is now deployed to AWS.")
    print(
        f"Created/updated {len(out.lambda_arns)} functions in AWS Lambda, "
        f"{len(out.static_arns)} static assets in S3\n"
    )
    print(f"Execute role:\t{out.execute_role_arn}")
    print(f"Execute policy:\t{out.execute_policy_arn}")
    print(f"Invoke policy:\t{out.invoke_policy_arn}\n")
    print(f"Invoke policy document:\n{out.invoke_policy_document}\n")

    if not args.install:
        print("You can now install it using:")
        print(f"  /apps install listed {out.manifest.app_id}\n")
    return 0


def cmd_clean(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    # Only the invoke key id is needed to find the user to delete
    settings = load_aws_settings(environ, include_invoke=False)
    client = _deploy_client(settings)
    access_key_id = environ.get(INVOKE_ACCESS_ENV_VAR, "")
    if not access_key_id:
        raise ConfigurationError(
            f"no AWS access key was provided. Please set {INVOKE_ACCESS_ENV_VAR}"
        )
    clean_aws(client, access_key_id)
    print("OK")
    return 0


def cmd_test_s3(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    upstream = _test_upstream(load_aws_settings(environ))
    data = asyncio.run(upstream.get_static(hello_serverless(), "test.txt"))
    text = data.decode(errors="replace")
    logger.debug(f"Received: {text}")
    if text != "static pong":
        raise ValidationError(f"expected 'static pong', got {text!r}")
    print("OK")
    return 0


def cmd_test_list(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    upstream = _test_upstream(load_aws_settings(environ))
    names = asyncio.run(upstream.list_s3_apps(args.prefix))
    print(json.dumps(names, indent=2))
    return 0


def cmd_test_lambda(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    upstream = _test_upstream(load_aws_settings(environ))
    data = asyncio.run(upstream.roundtrip(hello_serverless(), CallRequest.for_path("/ping")))
    logger.debug(f"Received: {data!r}")

    try:
        cresp = decode_call_response(data)
    except ValidationError as e:
        raise ValidationError(f"invalid value received: {data!r}") from e
    if cresp != CallResponse.text_response("PONG"):
        raise ValidationError(f"invalid value received: {data!r}")
    print("OK")
    return 0


def cmd_test_deploy(args: argparse.Namespace, environ: Mapping[str, str]) -> int:
    settings = load_aws_settings(environ)
    client = _deploy_client(settings)
    out = deploy_app_from_file(
        client,
        args.bundle,
        DeployAppParams(bucket=settings.bucket, should_update=True),
    )
    summary = {"lambda_arns": out.lambda_arns, "static_arns": out.static_arns}
    print(f"Success!\n\n{json.dumps(summary, indent=2)}")
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="appsctl", description="Manage AWS-deployed Apps")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_aws = sub.add_parser("aws", help="Manage the AWS upstream for Apps")
    aws = p_aws.add_subparsers(dest="aws_command", required=True)

    p_init = aws.add_parser("init", help="Initialize AWS to deploy Apps")
    p_init.add_argument("--create", action="store_true", help="Create resources that don't already exist")
    p_init.add_argument("--create-access-key", action="store_true", help="Create a new access key for the user")
    p_init.add_argument("--user", default=DEFAULT_USER_NAME, help="User that invokes Apps")
    p_init.add_argument("--group", default=DEFAULT_GROUP_NAME, help="Group connecting the user to the invoke policy")
    p_init.add_argument("--policy", default=DEFAULT_POLICY_NAME, help="Invoke policy name")
    p_init.add_argument("--execute-role", default=DEFAULT_EXECUTE_ROLE_NAME, help="Role assumed by running Lambdas")
    p_init.set_defaults(func=cmd_init)

    p_deploy = aws.add_parser("deploy", help="Deploy an App bundle to AWS (Lambda, S3)")
    p_deploy.add_argument("bundle", help="Path to the bundle zip")
    p_deploy.add_argument("--install", action="store_true", help="Install the deployed App on the host")
    p_deploy.add_argument("--update", action="store_true", help="Update functions that already exist")
    p_deploy.add_argument("--policy", default=DEFAULT_POLICY_NAME, help="Invoke policy name")
    p_deploy.add_argument("--execute-role", default=DEFAULT_EXECUTE_ROLE_NAME, help="Role assumed by running Lambdas")
    p_deploy.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable to pass to the App (repeatable)",
    )
    p_deploy.set_defaults(func=cmd_deploy)

    p_clean = aws.add_parser("clean", help="Delete the group, user and policy used for Apps")
    p_clean.set_defaults(func=cmd_clean)

    p_test = aws.add_parser("test", help="Test accessing a deployed resource")
    test = p_test.add_subparsers(dest="test_command", required=True)

    p_s3 = test.add_parser("s3", help="Read a static asset of hello-serverless")
    p_s3.set_defaults(func=cmd_test_s3)

    p_list = test.add_parser("list", help="List deployed App manifests")
    p_list.add_argument("--prefix", default="hello", help="App ID prefix")
    p_list.set_defaults(func=cmd_test_list)

    p_lambda = test.add_parser("lambda", help="Call the hello-serverless /ping function")
    p_lambda.set_defaults(func=cmd_test_lambda)

    p_test_deploy = test.add_parser("deploy", help="Deploy hello-serverless with --update")
    p_test_deploy.add_argument("bundle", help="Path to the bundle zip")
    p_test_deploy.set_defaults(func=cmd_test_deploy)

    return parser


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args, os.environ if environ is None else environ)
    except AppsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
