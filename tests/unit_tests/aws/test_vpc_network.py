import boto3
import pytest
from botocore.exceptions import ClientError

from calculator_api.aws.vpc_network import VPCNetworkBuilder
from tests.consts import TEST_APP_NAME


def _ingress_rules(group_id):
    ec2 = boto3.client("ec2")
    group = ec2.describe_security_groups(GroupIds=[group_id])["SecurityGroups"][0]
    return group["IpPermissions"]


def test_default_vpc_network_config(mocked_aws):
    config = (VPCNetworkBuilder()
              .use_vpc()
              .build_subnets()
              .build_security_group()
              .get_network_config())

    default_vpc = boto3.client("ec2").describe_vpcs(
        Filters=[{"Name": "isDefault", "Values": ["true"]}]
    )["Vpcs"][0]
    assert config["vpc_id"] == default_vpc["VpcId"]
    assert config["subnet_ids"]
    assert config["security_group_id"].startswith("sg-")
    assert config["assign_public_ip"] is True


def test_security_group_opens_app_port_to_everyone(mocked_aws):
    builder = VPCNetworkBuilder().use_default_vpc().build_security_group()

    rules = _ingress_rules(builder.security_group_id)
    assert len(rules) == 1
    assert rules[0]["IpProtocol"] == "tcp"
    assert rules[0]["FromPort"] == 3000
    assert rules[0]["ToPort"] == 3000
    assert rules[0]["IpRanges"][0]["CidrIp"] == "0.0.0.0/0"


def test_security_group_is_reused(mocked_aws):
    first = VPCNetworkBuilder().use_default_vpc().build_security_group().security_group_id
    second = VPCNetworkBuilder().use_default_vpc().build_security_group().security_group_id

    assert first == second
    assert len(_ingress_rules(first)) == 1


def test_ensure_ingress_fixes_a_closed_group(mocked_aws):
    ec2 = boto3.client("ec2")
    builder = VPCNetworkBuilder().use_default_vpc()
    group_id = ec2.create_security_group(
        GroupName="closed", Description="no inbound", VpcId=builder.vpc_id
    )["GroupId"]

    assert builder.has_ingress(group_id) is False
    assert builder.ensure_ingress(group_id) is True
    assert builder.has_ingress(group_id) is True
    assert builder.ensure_ingress(group_id) is False


def test_has_ingress_checks_port_range(mocked_aws):
    ec2 = boto3.client("ec2")
    builder = VPCNetworkBuilder().use_default_vpc()
    group_id = ec2.create_security_group(
        GroupName="range", Description="range", VpcId=builder.vpc_id
    )["GroupId"]
    ec2.authorize_security_group_ingress(
        GroupId=group_id,
        IpPermissions=[{
            "IpProtocol": "tcp", "FromPort": 8000, "ToPort": 8080,
            "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
        }],
    )

    assert builder.has_ingress(group_id, port=8080) is True
    assert builder.has_ingress(group_id, port=3000) is False
    assert builder.has_ingress(group_id, port=8080, cidr="10.0.0.0/8") is False


def test_subnets_require_vpc(mocked_aws):
    with pytest.raises(ValueError, match="VPC must be selected"):
        VPCNetworkBuilder().build_subnets()


def test_unknown_vpc(mocked_aws):
    with pytest.raises(ClientError):
        VPCNetworkBuilder().use_vpc("vpc-00000000")


def test_explicit_vpc_from_settings(mocked_aws, monkeypatch):
    from calculator_api.config.settings import get_settings

    ec2 = boto3.client("ec2")
    vpc_id = ec2.create_vpc(CidrBlock="10.1.0.0/16")["Vpc"]["VpcId"]
    ec2.create_subnet(VpcId=vpc_id, CidrBlock="10.1.1.0/24")
    monkeypatch.setenv("VPC_ID", vpc_id)
    get_settings.cache_clear()

    builder = VPCNetworkBuilder().use_vpc().build_subnets()

    assert builder.vpc_id == vpc_id
    assert len(builder.subnet_ids) == 1


def test_cleanup_deletes_project_group(mocked_aws):
    builder = VPCNetworkBuilder().use_default_vpc().build_security_group()

    VPCNetworkBuilder().cleanup()

    groups = boto3.client("ec2").describe_security_groups(
        Filters=[{"Name": "group-name", "Values": [f"{TEST_APP_NAME}-sg"]}]
    )["SecurityGroups"]
    assert groups == []
    assert builder.security_group_id
