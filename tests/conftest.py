import pytest

from path_measurements.errors import Transient_Remote_Error


class Fake_Clock:
	"""Monotonic clock that only moves when someone waits on it."""
	def __init__(self, start=0.0):
		self.now = start
		self.waits = []

	def __call__(self):
		return self.now

	def wait(self, seconds):
		self.waits.append(seconds)
		self.now += seconds

class Fake_Atlas:
	"""Stands in for Atlas_Wrapper. statuses and results are scripts consumed one
		entry per call; the last entry repeats. An entry that is an exception is raised."""
	def __init__(self, statuses=(2,), results=([],), probes_by_asn=None, msm_id=1001,
			create_error=None):
		self.statuses = list(statuses)
		self.results = list(results)
		self.probes_by_asn = probes_by_asn or {}
		self.msm_id = msm_id
		self.create_error = create_error
		self.created = []
		self.n_status_calls = 0
		self.n_result_calls = 0

	def _next(self, script):
		entry = script.pop(0) if len(script) > 1 else script[0]
		if isinstance(entry, Exception):
			raise entry
		return entry

	def get_probes_by_asn(self, asns):
		return {asn: list(self.probes_by_asn[asn]) for asn in asns if asn in self.probes_by_asn}

	def create_traceroute(self, target, probe_ids, description, **kwargs):
		if self.create_error is not None:
			raise self.create_error
		self.created.append((target, list(probe_ids), description))
		return self.msm_id

	def get_measurement_status(self, msm_id):
		self.n_status_calls += 1
		status_id = self._next(self.statuses)
		return {"id": msm_id, "status": {"id": status_id, "name": "status {}".format(status_id)}}

	def get_measurement_results(self, msm_id):
		self.n_result_calls += 1
		return list(self._next(self.results))

class Fake_Lookup:
	"""ASN lookup backend over fixed tables, counting calls."""
	def __init__(self, asns=None, names=None, holders=None, failing=()):
		self.asns = asns or {}
		self.names = names or {}
		self.holders = holders or {}
		self.failing = set(failing)
		self.asn_calls = []
		self.name_calls = []

	def lookup_asn(self, addr):
		self.asn_calls.append(addr)
		if addr in self.failing:
			raise Transient_Remote_Error("lookup of {} timed out".format(addr))
		asn = self.asns.get(addr)
		return asn, self.holders.get(asn)

	def lookup_name(self, asn):
		self.name_calls.append(asn)
		if asn in self.failing:
			raise Transient_Remote_Error("name lookup of AS{} timed out".format(asn))
		return self.names.get(asn)

def make_hop(hop, *addrs):
	"""A RIPE Atlas hop entry; '*' stands for a timed out packet."""
	replies = []
	for addr in addrs:
		if addr == '*':
			replies.append({'x': '*'})
		else:
			replies.append({'from': addr, 'rtt': 10.0 + hop, 'size': 76, 'ttl': 255 - hop})
	return {'hop': hop, 'result': replies}

def make_trace(prb_id, *hops, dst_addr="193.0.14.129"):
	"""hops are lists of reply addresses, one list per hop starting at hop 1."""
	return {
		'prb_id': prb_id,
		'dst_addr': dst_addr,
		'type': 'traceroute',
		'result': [make_hop(i + 1, *addrs) for i, addrs in enumerate(hops)],
	}

@pytest.fixture
def fake_clock():
	return Fake_Clock()
