#!/usr/bin/env python3

from typing import Dict, List, Optional

import ipaddress

import pulumi
from pulumi import ResourceOptions, Output
import pulumi_aws as aws
from pulumi_aws import ec2

from .config import DEFAULT_SUBNET_PREFIXLEN, DEFAULT_VPC_CIDR


def public_subnet_cidr(vpc_cidr: str, prefixlen: int=DEFAULT_SUBNET_PREFIXLEN) -> str:
  """The CIDR of the (single) public subnet: the first /prefixlen block of the VPC."""
  vpc_ip_network = ipaddress.ip_network(vpc_cidr)
  first = next(vpc_ip_network.subnets(new_prefix=prefixlen))
  return str(first)


class MonitoringNetwork(pulumi.ComponentResource):
  """A VPC for the monitoring instance to live in.

  One availability zone, one public subnet, and no NAT gateways: the instance gets
  a public address of its own, and there is no private subnet that needs outbound
  traffic.
  """

  vpc: ec2.Vpc
  internet_gateway: ec2.InternetGateway
  route_table: ec2.DefaultRouteTable
  public_subnets: List[ec2.Subnet]
  public_subnet_ids: List[Output[str]]

  def __init__(
        self,
        name: str,
        vpc_cidr: str=DEFAULT_VPC_CIDR,
        availability_zone: Optional[str]=None,
        tags: Optional[Dict[str, str]]=None,
        opts: Optional[ResourceOptions]=None,
      ):
    super().__init__('monitoring:index:MonitoringNetwork', name, None, opts)

    if availability_zone is None:
      azs = aws.get_availability_zones_output(
          state='available',
          opts=pulumi.InvokeOptions(parent=self),
        )
      availability_zone = azs.names.apply(lambda names: sorted(names)[0])

    self.vpc = ec2.Vpc(
        f"{name}-vpc",
        opts=ResourceOptions(parent=self),
        cidr_block=vpc_cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags=tags,
      )

    # Route internet traffic to/from public IPs attached to the VPC
    self.internet_gateway = ec2.InternetGateway(
        f"{name}-gateway",
        opts=ResourceOptions(parent=self),
        vpc_id=self.vpc.id,
        tags=tags,
      )

    # Everything inside the VPC CIDR routes locally, everything else goes out
    # through the internet gateway.
    self.route_table = ec2.DefaultRouteTable(
        f"{name}-route-table",
        opts=ResourceOptions(parent=self),
        default_route_table_id=self.vpc.default_route_table_id,
        routes=[
            ec2.DefaultRouteTableRouteArgs(
                cidr_block='0.0.0.0/0',
                gateway_id=self.internet_gateway.id,
              ),
          ],
        tags=tags,
      )

    public_subnet = ec2.Subnet(
        f"{name}-public-subnet-0",
        opts=ResourceOptions(parent=self),
        availability_zone=availability_zone,
        vpc_id=self.vpc.id,
        cidr_block=public_subnet_cidr(vpc_cidr),
        map_public_ip_on_launch=True,
        tags=tags,
      )
    self.public_subnets = [ public_subnet ]
    self.public_subnet_ids = [ x.id for x in self.public_subnets ]

    self.route_table_association = ec2.RouteTableAssociation(
        f"{name}-public-subnet-0-route-table-association",
        opts=ResourceOptions(parent=self),
        route_table_id=self.route_table.id,
        subnet_id=public_subnet.id,
      )

    self.register_outputs(dict(
        vpc_id=self.vpc.id,
        public_subnet_ids=self.public_subnet_ids,
      ))
