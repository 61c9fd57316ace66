"""Shared pytest fixtures for iamcompose tests."""
import json

import boto3
import pytest

# moto is imported lazily inside fixtures so the import error surface is clear.

HOME = "111111111111"
FOREIGN = "999999999999"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Prevent accidental real AWS calls by setting fake credentials."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("IAMCOMPOSE_HOME_ACCOUNT", raising=False)


@pytest.fixture
def moto_sts():
    """Yield a real boto3 STS client inside a moto mock_aws context."""
    from moto import mock_aws

    with mock_aws():
        yield boto3.client("sts", region_name="us-east-1")


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def write_policy():
    """Return a helper that writes a JSON document to a path."""
    return write_json


@pytest.fixture
def module_dir(tmp_path):
    """A module directory with a requirement, one override and a trust policy."""
    root = tmp_path / "eks"
    write_json(root / "required.json", {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Sid": "ClusterRead",
                "Effect": "Allow",
                "Action": ["eks:DescribeCluster", "eks:ListClusters"],
                "Resource": f"arn:aws:eks:us-east-1:{HOME}:cluster/main",
            }
        ],
    })
    write_json(root / "overrides" / "10-logs.json", {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": "logs:CreateLogGroup",
                "Resource": f"arn:aws:logs:us-east-1:{HOME}:log-group:/aws/eks/*",
            }
        ],
    })
    write_json(root / "trust.json", {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "eks.amazonaws.com"},
                "Action": "sts:AssumeRole",
            }
        ],
    })
    return root
