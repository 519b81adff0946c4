"""AWS service network: VPC, subnet tiers, NAT, security groups and VPC endpoints"""
