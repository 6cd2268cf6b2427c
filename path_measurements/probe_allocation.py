### Splits the probe budget of a single RIPE Atlas measurement fairly across the
### origin networks (ASNs) the user asked for.

import numpy as np

from path_measurements.config import MAX_PROBES_PER_MEAS
from path_measurements.errors import Validation_Error


def make_random_source(seed=None):
	"""Seed this if you want the same probes every run (e.g., in tests)."""
	return np.random.RandomState(seed)

class Probe_Allocation:
	"""Probes chosen from one ASN. Read-only once allocate_probes returns it."""
	def __init__(self, asn, available, allocated, probe_ids):
		self._asn = asn
		self._available = available
		self._allocated = allocated
		self._probe_ids = tuple(probe_ids)

	@property
	def asn(self):
		return self._asn

	@property
	def available(self):
		return self._available

	@property
	def allocated(self):
		return self._allocated

	@property
	def probe_ids(self):
		return self._probe_ids

	def to_dict(self):
		return {
			"asn": self.asn,
			"available": self.available,
			"allocated": self.allocated,
			"probe_ids": list(self.probe_ids),
		}

	def __repr__(self):
		return "Probe_Allocation(AS{}, {}/{} probes)".format(self.asn, self.allocated, self.available)

def select_random_probes(probe_ids, n, rng):
	"""Uniformly samples n of probe_ids without replacement. Takes them all if n covers the list."""
	if n >= len(probe_ids):
		return list(probe_ids)
	which = rng.choice(len(probe_ids), size=n, replace=False)
	return [probe_ids[i] for i in which]

def allocate_probes(probes_by_asn, requested_asns, ceiling=MAX_PROBES_PER_MEAS, rng=None):
	"""Allocates at most ceiling probes across requested_asns.
		probes_by_asn maps ASN -> list of probe IDs in that ASN.
		Returns (allocations, asns_without_probes), allocations in request order."""
	if len(requested_asns) == 0:
		raise Validation_Error("no ASNs provided")
	if ceiling <= 0:
		raise Validation_Error("probe ceiling must be positive, got {}".format(ceiling))
	if rng is None:
		rng = make_random_source()

	# asking for the same ASN twice doesn't earn it twice the probes
	requested_asns = list(dict.fromkeys(requested_asns))

	asns_with_probes, asns_without_probes = [], []
	for asn in requested_asns:
		if len(probes_by_asn.get(asn, [])) == 0:
			asns_without_probes.append(asn)
		else:
			asns_with_probes.append(asn)
	if asns_with_probes == []:
		raise Validation_Error("no ASNs have available probes",
			asns_without_probes=asns_without_probes)

	# First pass, everyone gets an equal share (or all they have)
	quota = ceiling // len(asns_with_probes)
	n_allocated, chosen = {}, {}
	for asn in asns_with_probes:
		probes = probes_by_asn[asn]
		n_allocated[asn] = min(len(probes), quota)
		chosen[asn] = select_random_probes(probes, n_allocated[asn], rng)

	# Second pass, hand what's left to ASNs that can still absorb probes, in request order
	remaining = ceiling - sum(n_allocated.values())
	while remaining > 0:
		distributed = False
		for asn in asns_with_probes:
			probes = probes_by_asn[asn]
			if n_allocated[asn] >= len(probes): continue
			extra = min(len(probes) - n_allocated[asn], remaining)
			n_allocated[asn] += extra
			# re-draw the whole (larger) selection so it stays a uniform sample
			chosen[asn] = select_random_probes(probes, n_allocated[asn], rng)
			remaining -= extra
			distributed = True
			if remaining == 0:
				break
		if not distributed:
			# every ASN is exhausted
			break

	allocations = [Probe_Allocation(asn, len(probes_by_asn[asn]), n_allocated[asn], chosen[asn])
		for asn in asns_with_probes]
	return allocations, asns_without_probes

def get_total_probe_count(allocations):
	return sum(alloc.allocated for alloc in allocations)

def get_allocated_probe_ids(allocations):
	return [prb for alloc in allocations for prb in alloc.probe_ids]
