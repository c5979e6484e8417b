from __future__ import annotations

import json


def test_cli_deploy_show_and_remove_flow(cli_runner, fake_provisioner, app_source):
    runner, app = cli_runner

    result = runner.invoke(app, ["list-components"])
    assert result.exit_code == 0
    assert result.output.strip() == "[]"

    result = runner.invoke(app, ["deploy", "express", "--src", str(app_source)])
    assert result.exit_code == 0, result.output
    assert "serviceUrl: http://express-" in result.output
    assert "apps.example.test" in result.output
    assert "image: octocat/express:" in result.output

    namespace = fake_provisioner.calls_named("ensure_namespace")[0]["name"]
    assert namespace.startswith("express-")

    result = runner.invoke(app, ["show-state", "express"])
    assert result.exit_code == 0
    assert "name: express" in result.output
    assert f"namespace: {namespace}" in result.output

    result = runner.invoke(app, ["list-components"])
    assert result.exit_code == 0
    assert "name: express" in result.output

    result = runner.invoke(app, ["remove", "express"])
    assert result.exit_code == 0
    assert result.output.strip() == "{}"
    assert fake_provisioner.calls_named("delete_namespace") == [{"name": namespace}]

    result = runner.invoke(app, ["show-state", "express"])
    assert result.exit_code == 0
    assert "state: {}" in result.output


def test_cli_deploy_passes_extra_inputs(cli_runner, fake_provisioner, app_source):
    runner, app = cli_runner

    result = runner.invoke(
        app,
        [
            "deploy",
            "express",
            "--src",
            str(app_source),
            "--app-name",
            "Storefront",
            "--inputs-json",
            json.dumps({"namespace": "shop"}),
        ],
    )

    assert result.exit_code == 0, result.output
    assert fake_provisioner.calls_named("ensure_namespace") == []
    assert "namespace: shop" in result.output
    assert "image: octocat/storefront:" in result.output


def test_cli_deploy_prints_cleanup_warnings(cli_runner, fake_provisioner, app_source):
    runner, app = cli_runner
    fake_provisioner.raise_on_delete_pod = RuntimeError("pod is stuck terminating")

    result = runner.invoke(app, ["deploy", "express", "--src", str(app_source)])

    assert result.exit_code == 0, result.output
    assert "Warning: delete build pod" in result.output
    assert "pod is stuck terminating" in result.output


def test_cli_deploy_rejects_non_object_inputs(cli_runner, app_source):
    runner, app = cli_runner

    result = runner.invoke(app, ["deploy", "express", "--src", str(app_source), "--inputs-json", "[1, 2]"])

    assert result.exit_code == 1
    assert "Error: Deploy inputs must decode to a JSON object" in result.output


def test_cli_deploy_requires_registry_credentials(cli_runner, monkeypatch, fake_provisioner, app_source):
    runner, app = cli_runner
    monkeypatch.delenv("KNATIVE_DEPLOYER_REGISTRY_AUTH")

    result = runner.invoke(app, ["deploy", "express", "--src", str(app_source)])

    assert result.exit_code == 1
    assert "REGISTRY_AUTH" in result.output
    assert fake_provisioner.calls == []


def test_cli_show_state_for_unknown_component_fails(cli_runner):
    runner, app = cli_runner

    result = runner.invoke(app, ["show-state", "nope"])

    assert result.exit_code == 1
    assert "Component nope not found" in result.output
