"""Stacks composed from the VPC and security group builders."""
