import ipaddress

from path_measurements.config import private_ips

private_networks = [ipaddress.ip_network("{}/{}".format(pref, l)) for pref, l in private_ips]


def is_bad_ip(ip):
	"""True if ip is unparseable, private or reserved -- not worth an ASN lookup."""
	try:
		addr = ipaddress.ip_address(ip)
	except ValueError:
		return True
	if addr.version == 6:
		return addr.is_private or addr.is_reserved or addr.is_multicast or addr.is_link_local
	return any(addr in ntwrk for ntwrk in private_networks)

def is_ip_literal(s):
	try:
		ipaddress.ip_address(s)
		return True
	except ValueError:
		return False

def parse_asn_list(s):
	"""Parses a comma-separated list of positive ASNs, e.g. '5384, 7713'."""
	asns = []
	for part in s.split(','):
		part = part.strip()
		if part == "": continue
		if part.upper().startswith("AS"):
			part = part[2:]
		try:
			asn = int(part)
		except ValueError:
			raise ValueError("invalid ASN: {}".format(part))
		if asn <= 0:
			raise ValueError("ASN must be positive: {}".format(asn))
		asns.append(asn)
	if asns == []:
		raise ValueError("no valid ASNs provided")
	return asns
