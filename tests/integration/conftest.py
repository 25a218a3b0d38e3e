import base64
import json
import os
import secrets
import string
import subprocess
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import boto3
import pytest


def _require_env(name: str) -> str:
    val = os.environ.get(name)
    if not val:
        raise RuntimeError(f"missing required env var: {name}")
    return val


def _run(cmd: str, *, env: dict[str, str] | None = None) -> str:
    return subprocess.check_output(["bash", "-lc", cmd], env=env, text=True).strip()


def _rand_suffix(n: int = 8) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(n))


def _password() -> str:
    # Cognito policy in stack requires: upper, lower, digit, symbol, min length 12.
    return f"It{_rand_suffix(10)}!9aA"


def _jwt_claims(token: str) -> dict[str, Any]:
    parts = token.split(".")
    if len(parts) < 2:
        raise ValueError("not a JWT")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    return json.loads(base64.urlsafe_b64decode(payload.encode()).decode())


@dataclass
class StackOutputs:
    stack_name: str
    kanban_url: str
    user_pool_id: str
    user_pool_client_id: str
    users_table: str


def pytest_collection_modifyitems(config, items):
    if os.environ.get("RUN_INTEGRATION") == "1":
        return
    skip = pytest.mark.skip(reason="integration tests require RUN_INTEGRATION=1")
    for item in items:
        if item.nodeid.startswith("tests/integration/"):
            item.add_marker(skip)


@pytest.fixture(scope="session")
def it_env() -> dict[str, str]:
    if os.environ.get("RUN_INTEGRATION") != "1":
        pytest.skip("set RUN_INTEGRATION=1 to run integration tests")

    _require_env("AWS_PROFILE")
    _require_env("AWS_REGION")

    env = os.environ.copy()
    env.setdefault("JSII_SILENCE_WARNING_UNTESTED_NODE_VERSION", "1")
    return env


@pytest.fixture(scope="session")
def session(it_env: dict[str, str]) -> boto3.session.Session:
    return boto3.session.Session(profile_name=it_env["AWS_PROFILE"], region_name=it_env["AWS_REGION"])


@pytest.fixture(scope="session")
def stack_name(it_env: dict[str, str]) -> str:
    prefix = it_env.get("IT_STACK_PREFIX", "KanbanIT")
    ts = time.strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{ts}-{_rand_suffix()}"


@pytest.fixture(scope="session")
def deploy_stack(it_env: dict[str, str], session, stack_name: str) -> StackOutputs:
    env = dict(it_env)
    env["CDK_STACK_NAME"] = stack_name

    _run(f"npx --yes aws-cdk deploy {stack_name} --require-approval never", env=env)

    desc = session.client("cloudformation").describe_stacks(StackName=stack_name)["Stacks"][0]
    outputs = {o["OutputKey"]: o["OutputValue"] for o in desc.get("Outputs", [])}

    return StackOutputs(
        stack_name=stack_name,
        kanban_url=outputs["KanbanInvokeUrl"],
        user_pool_id=outputs["UserPoolId"],
        user_pool_client_id=outputs["UserPoolClientId"],
        users_table=outputs["UsersTableName"],
    )


def _create_user(session, deploy_stack: StackOutputs) -> dict[str, str]:
    cognito = session.client("cognito-idp")
    username = f"kanban-it-{_rand_suffix(10)}"
    password = _password()
    cognito.admin_create_user(UserPoolId=deploy_stack.user_pool_id, Username=username, MessageAction="SUPPRESS")
    cognito.admin_set_user_password(
        UserPoolId=deploy_stack.user_pool_id,
        Username=username,
        Password=password,
        Permanent=True,
    )
    resp = cognito.initiate_auth(
        ClientId=deploy_stack.user_pool_client_id,
        AuthFlow="USER_PASSWORD_AUTH",
        AuthParameters={"USERNAME": username, "PASSWORD": password},
    )
    id_token = resp["AuthenticationResult"]["IdToken"]
    sub = _jwt_claims(id_token)["sub"]
    session.client("dynamodb").put_item(
        TableName=deploy_stack.users_table,
        Item={"sub": {"S": sub}, "username": {"S": username}},
    )
    return {"username": username, "id_token": id_token, "sub": sub}


@pytest.fixture(scope="session")
def owner(session, deploy_stack: StackOutputs) -> dict[str, str]:
    return _create_user(session, deploy_stack)


@pytest.fixture(scope="session")
def outsider(session, deploy_stack: StackOutputs) -> dict[str, str]:
    return _create_user(session, deploy_stack)


@pytest.fixture(scope="session")
def call(deploy_stack: StackOutputs) -> Callable[..., tuple[int, dict[str, Any]]]:
    def _call(user: dict[str, str], method: str, path: str, body: dict | None = None) -> tuple[int, dict[str, Any]]:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(
            f"{deploy_stack.kanban_url}{path}",
            data=data,
            headers={"Authorization": user["id_token"], "content-type": "application/json"},
            method=method,
        )
        try:
            with urllib.request.urlopen(req, timeout=30) as resp:
                return resp.status, json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            return e.code, json.loads(e.read().decode("utf-8"))

    return _call


@pytest.fixture(scope="session", autouse=True)
def teardown(it_env: dict[str, str], session, deploy_stack: StackOutputs, request) -> Iterator[None]:
    yield

    destroy_on_success = it_env.get("IT_DESTROY_ON_SUCCESS", "1") == "1"
    destroy_on_failure = it_env.get("IT_DESTROY_ON_FAILURE", "1") == "1"

    failed = request.session.testsfailed > 0
    if (failed and not destroy_on_failure) or ((not failed) and not destroy_on_success):
        return

    env = dict(it_env)
    env["CDK_STACK_NAME"] = deploy_stack.stack_name
    # Best-effort cleanup; the user pool and tables go with the stack.
    try:
        _run(f"npx --yes aws-cdk destroy {deploy_stack.stack_name} --force", env=env)
    except subprocess.CalledProcessError:
        pass
