"""VPC networking for the Fargate service: subnets and the public security group."""
import logging
from typing import Dict, Any, Optional
from botocore.exceptions import ClientError

from calculator_api.aws.utils import get_ec2_client, ec2_tags
from calculator_api.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class VPCNetworkBuilder:
    """Builder for the network configuration a public Fargate task needs."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ec2_client = get_ec2_client(self.settings)
        self.vpc_id = None
        self.subnet_ids = []
        self.security_group_id = None
        self.security_group_name = f"{self.settings.app_name}-sg"

    def use_default_vpc(self) -> 'VPCNetworkBuilder':
        """Select the account's default VPC."""
        response = self.ec2_client.describe_vpcs(
            Filters=[{'Name': 'isDefault', 'Values': ['true']}]
        )
        if not response['Vpcs']:
            raise ValueError(
                f"No default VPC in {self.settings.aws_region}; set VPC_ID to deploy into an existing VPC"
            )
        self.vpc_id = response['Vpcs'][0]['VpcId']
        logger.info(f"Using default VPC: {self.vpc_id}")
        return self

    def use_vpc(self, vpc_id: Optional[str] = None) -> 'VPCNetworkBuilder':
        """Select `vpc_id`, the configured VPC, or the default VPC."""
        vpc_id = vpc_id or self.settings.vpc_id
        if not vpc_id:
            return self.use_default_vpc()

        try:
            self.ec2_client.describe_vpcs(VpcIds=[vpc_id])
        except ClientError as e:
            logger.error(f"VPC {vpc_id} not found: {e}")
            raise
        self.vpc_id = vpc_id
        logger.info(f"Using VPC: {self.vpc_id}")
        return self

    def build_subnets(self) -> 'VPCNetworkBuilder':
        """Collect the VPC's subnets, preferring public ones when tasks get a public IP."""
        if not self.vpc_id:
            raise ValueError("VPC must be selected before subnets")

        response = self.ec2_client.describe_subnets(
            Filters=[
                {'Name': 'vpc-id', 'Values': [self.vpc_id]},
                {'Name': 'state', 'Values': ['available']}
            ]
        )
        subnets = response['Subnets']
        if not subnets:
            raise ValueError(f"VPC {self.vpc_id} has no available subnets")

        if self.settings.assign_public_ip:
            public = [s for s in subnets if s.get('MapPublicIpOnLaunch')]
            if public:
                subnets = public
            else:
                logger.warning(f"No public subnets in {self.vpc_id}; tasks may not be reachable")

        self.subnet_ids = sorted(s['SubnetId'] for s in subnets)
        logger.info(f"Using subnets: {self.subnet_ids}")
        return self

    def build_security_group(self) -> 'VPCNetworkBuilder':
        """Create (or reuse) the service security group and open the container port."""
        if not self.vpc_id:
            raise ValueError("VPC must be selected before security groups")

        existing = self._find_existing_security_group()
        if existing:
            self.security_group_id = existing['GroupId']
            logger.info(f"Using existing security group: {self.security_group_id}")
        else:
            try:
                response = self.ec2_client.create_security_group(
                    GroupName=self.security_group_name,
                    Description=f"Inbound TCP {self.settings.port} for {self.settings.app_name}",
                    VpcId=self.vpc_id,
                    TagSpecifications=[{
                        'ResourceType': 'security-group',
                        'Tags': ec2_tags(self.settings, self.security_group_name)
                    }]
                )
            except ClientError as e:
                logger.error(f"Failed to create security group: {e}")
                raise
            self.security_group_id = response['GroupId']
            logger.info(f"Created security group: {self.security_group_id}")

        self.ensure_ingress(self.security_group_id)
        return self

    def has_ingress(self, group_id: str, port: Optional[int] = None, cidr: Optional[str] = None) -> bool:
        """True when `group_id` allows inbound TCP on `port` from `cidr`."""
        port = port or self.settings.port
        cidr = cidr or self.settings.ingress_cidr

        response = self.ec2_client.describe_security_groups(GroupIds=[group_id])
        for permission in response['SecurityGroups'][0].get('IpPermissions', []):
            protocol = permission.get('IpProtocol')
            if protocol == '-1':
                port_match = True
            elif protocol == 'tcp':
                port_match = permission.get('FromPort', 0) <= port <= permission.get('ToPort', -1)
            else:
                port_match = False

            if port_match and any(r.get('CidrIp') == cidr for r in permission.get('IpRanges', [])):
                return True
        return False

    def ensure_ingress(self, group_id: Optional[str] = None, port: Optional[int] = None,
                       cidr: Optional[str] = None) -> bool:
        """Allow inbound TCP on the container port. Returns True when a rule was added.

        A group created by VPC defaults only admits traffic from itself, so the
        task is unreachable from the internet until this rule exists.
        """
        group_id = group_id or self.security_group_id
        port = port or self.settings.port
        cidr = cidr or self.settings.ingress_cidr
        if not group_id:
            raise ValueError("No security group selected")

        if self.has_ingress(group_id, port, cidr):
            logger.info(f"Security group {group_id} already allows tcp/{port} from {cidr}")
            return False

        try:
            self.ec2_client.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[{
                    'IpProtocol': 'tcp',
                    'FromPort': port,
                    'ToPort': port,
                    'IpRanges': [{'CidrIp': cidr, 'Description': f"{self.settings.app_name} http"}]
                }]
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'InvalidPermission.Duplicate':
                return False
            logger.error(f"Failed to authorize ingress on {group_id}: {e}")
            raise

        logger.info(f"Opened tcp/{port} from {cidr} on {group_id}")
        return True

    def get_network_config(self) -> Dict[str, Any]:
        """Get the network configuration consumed by the ECS service."""
        return {
            'vpc_id': self.vpc_id,
            'subnet_ids': self.subnet_ids,
            'security_group_id': self.security_group_id,
            'assign_public_ip': self.settings.assign_public_ip,
        }

    def cleanup(self) -> None:
        """Delete the project security group."""
        if not self.vpc_id:
            self.use_vpc()
        existing = self._find_existing_security_group()
        if not existing:
            logger.info("No project security group to delete")
            return
        try:
            self.ec2_client.delete_security_group(GroupId=existing['GroupId'])
            logger.info(f"Deleted security group: {existing['GroupId']}")
        except ClientError as e:
            logger.warning(f"Failed to delete security group {existing['GroupId']}: {e}")

    def _find_existing_security_group(self) -> Optional[Dict[str, Any]]:
        try:
            response = self.ec2_client.describe_security_groups(
                Filters=[
                    {'Name': 'group-name', 'Values': [self.security_group_name]},
                    {'Name': 'vpc-id', 'Values': [self.vpc_id]}
                ]
            )
            return response['SecurityGroups'][0] if response['SecurityGroups'] else None
        except ClientError:
            return None
