### Turns what the user typed as a target (an address, a hostname, or aws_<region>)
### into one address we can point a traceroute at.

import ipaddress, logging, socket

import numpy as np
import requests

from path_measurements.config import (AWS_IP_RANGES_URL, AWS_TARGET_PREFIX, AWS_SERVICES,
	AWS_TIMEOUT)
from path_measurements.errors import Validation_Error, Transient_Remote_Error
from path_measurements.helpers import is_ip_literal


def is_aws_region(target):
	return target.startswith(AWS_TARGET_PREFIX)

def get_aws_prefixes():
	"""Fetches AWS' published IPv4 prefixes."""
	try:
		r = requests.get(AWS_IP_RANGES_URL, timeout=AWS_TIMEOUT)
		r.raise_for_status()
		return r.json()['prefixes']
	except (requests.exceptions.RequestException, ValueError, KeyError) as e:
		raise Transient_Remote_Error("Failed to fetch AWS IP ranges: {}".format(e))

def list_aws_regions():
	regions = set()
	for prefix in get_aws_prefixes():
		if prefix.get('region') and prefix.get('service') in AWS_SERVICES:
			regions.add(prefix['region'])
	return sorted(regions)

def get_aws_region_ip(region, rng=None):
	"""Picks a random EC2/AMAZON prefix in region and returns its first host address."""
	if is_aws_region(region):
		region = region[len(AWS_TARGET_PREFIX):]
	matching = [p['ip_prefix'] for p in get_aws_prefixes()
		if p.get('region') == region and p.get('service') in AWS_SERVICES]
	if matching == []:
		raise Validation_Error("no IP ranges found for region: {}".format(region))
	if rng is None:
		rng = np.random.RandomState()
	prefix = ipaddress.ip_network(matching[rng.randint(len(matching))])
	# the network address itself rarely answers
	if prefix.num_addresses > 2:
		return str(prefix.network_address + 1)
	return str(prefix.network_address)

def resolve_target(target, rng=None):
	target = target.strip()
	if target == "":
		raise Validation_Error("no target given")
	if is_aws_region(target):
		addr = get_aws_region_ip(target, rng=rng)
		logging.info("Resolved AWS region {} to {}".format(target, addr))
		return addr
	if is_ip_literal(target):
		return target
	try:
		return socket.gethostbyname(target)
	except socket.gaierror as e:
		raise Validation_Error("could not resolve {}: {}".format(target, e))
