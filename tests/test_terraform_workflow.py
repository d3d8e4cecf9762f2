"""Tests for terraform/workflow.py module."""

import logging

import pytest

from tfdeploy.config import DeploymentConfig, terraform_working_bucket
from tfdeploy.errors import ConfigurationError, OperationNotImplementedError
from tfdeploy.terraform.executor import TerraformCommandError
from tfdeploy.terraform.models import OutputMeta
from tfdeploy.terraform.workflow import (
    OUTPUTS_HEADER,
    TerraformWorkflowError,
    backend_config,
    ensure_supported,
    format_output_value,
    render_outputs,
    run_terraform_operation,
    state_key,
    terraform_variables,
    var_file_for,
)
from tfdeploy.types import TerraformOperation


def make_config(operation="plan", **overrides) -> DeploymentConfig:
    values = {
        "operation": TerraformOperation(operation),
        "account_number": 123,
        "environment": "nonprod",
        "region": "eu-west-1",
        "app_name": "jwt-authorizer",
        "vpc_id": "vpc-0abc",
    }
    values.update(overrides)
    return DeploymentConfig(**values)


class TestConfigurationAssembly:
    """Tests for backend and variable composition."""

    def test_working_bucket(self):
        assert (
            terraform_working_bucket(123, "eu-west-1")
            == "123-eu-west-1-terraform-deployments"
        )

    def test_state_key(self):
        assert state_key("prod", "api") == "tfstate/prod/api.json"

    def test_var_file_for(self):
        assert var_file_for("prod") == "environments/prod.tfvars"

    def test_backend_config(self):
        assert backend_config(make_config()) == {
            "key": "tfstate/nonprod/jwt-authorizer.json",
            "bucket": "123-eu-west-1-terraform-deployments",
            "region": "eu-west-1",
        }

    def test_terraform_variables(self):
        assert terraform_variables(make_config()) == {
            "terraform_working_bucket": "123-eu-west-1-terraform-deployments",
            "account_number": "123",
            "environment": "nonprod",
            "vpc_id": "vpc-0abc",
        }


class TestEnsureSupported:
    """Tests for ensure_supported guard."""

    def test_destroy_refused(self):
        with pytest.raises(OperationNotImplementedError) as exc_info:
            ensure_supported(TerraformOperation.DESTROY)
        assert exc_info.value.code == "not_implemented"
        assert "Destroy needs implementing" in str(exc_info.value)

    def test_unknown_refused(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ensure_supported("refresh")
        assert "init, plan, apply, destroy" in str(exc_info.value)

    @pytest.mark.parametrize("operation", ["init", "plan", "apply"])
    def test_supported(self, operation):
        assert ensure_supported(operation) is TerraformOperation(operation)


class TestRunTerraformOperation:
    """Tests for operation dispatch against a fake Terraform."""

    def test_init(self, fake_tf):
        result = run_terraform_operation(fake_tf, make_config("init"))

        assert result.operation is TerraformOperation.INIT
        assert fake_tf.calls == [
            (
                "init",
                {
                    "backend_config": {
                        "key": "tfstate/nonprod/jwt-authorizer.json",
                        "bucket": "123-eu-west-1-terraform-deployments",
                        "region": "eu-west-1",
                    },
                    "upgrade": True,
                },
            )
        ]

    def test_plan(self, fake_tf):
        result = run_terraform_operation(fake_tf, make_config("plan"))

        assert result.plan_has_changes is True
        assert fake_tf.call_names == ["plan"]
        kwargs = fake_tf.calls[0][1]
        assert kwargs["refresh"] is True
        assert kwargs["var_file"] == "environments/nonprod.tfvars"
        assert kwargs["variables"]["account_number"] == "123"

    def test_apply_collects_outputs(self, make_fake_tf):
        outputs = {
            "url": OutputMeta(value="https://x", sensitive=False),
            "secret": OutputMeta(value="abc", sensitive=True),
        }
        tf = make_fake_tf(outputs=outputs)

        result = run_terraform_operation(tf, make_config("apply", environment="prod"))

        assert tf.call_names == ["apply", "output"]
        assert tf.calls[0][1]["var_file"] == "environments/prod.tfvars"
        assert result.outputs == outputs

    def test_destroy_makes_no_calls(self, fake_tf):
        with pytest.raises(OperationNotImplementedError):
            run_terraform_operation(fake_tf, make_config("destroy"))
        assert fake_tf.calls == []

    @pytest.mark.parametrize("operation", ["plan", "apply"])
    def test_missing_var_file(self, fake_tf, operation):
        config = make_config(operation, environment="staging")

        with pytest.raises(TerraformWorkflowError) as exc_info:
            run_terraform_operation(fake_tf, config)

        assert "staging.tfvars" in str(exc_info.value)
        assert fake_tf.calls == []

    def test_stdout_logged_once(self, make_fake_tf, caplog):
        tf = make_fake_tf(stdout="Plan: 1 to add\n")

        with caplog.at_level(logging.INFO, logger="tfdeploy"):
            result = run_terraform_operation(tf, make_config("plan"))

        assert result.stdout == "Plan: 1 to add\n"
        assert caplog.text.count("Plan: 1 to add") == 1

    def test_stdout_logged_on_failure(self, make_fake_tf, caplog):
        tf = make_fake_tf(stdout="partial apply\n", fail_on="apply")

        with caplog.at_level(logging.INFO, logger="tfdeploy"):
            with pytest.raises(TerraformCommandError):
                run_terraform_operation(tf, make_config("apply"))

        assert "partial apply" in caplog.text
        assert "output" not in tf.call_names


class TestRenderOutputs:
    """Tests for output rendering."""

    def test_sensitive_outputs_skipped(self):
        lines = render_outputs(
            {
                "url": OutputMeta(value="https://x", sensitive=False),
                "secret": OutputMeta(value="abc", sensitive=True),
            }
        )

        assert lines == [OUTPUTS_HEADER, "url = https://x"]
        assert not any("secret" in line or "abc" in line for line in lines)

    def test_empty_outputs_render_nothing(self):
        assert render_outputs({}) == []

    def test_only_sensitive_outputs_render_header(self):
        lines = render_outputs({"secret": OutputMeta(value="abc", sensitive=True)})
        assert lines == [OUTPUTS_HEADER]

    def test_format_output_value(self):
        assert format_output_value("plain") == "plain"
        assert format_output_value(3) == "3"
        assert format_output_value(["a", 1]) == '["a",1]'
        assert format_output_value({"k": True}) == '{"k":true}'
