### Which ASNs do the traceroutes of one measurement go through, and how varied are
### the paths themselves.

import logging
from collections import namedtuple

import numpy as np

from path_measurements.config import HOP_RANGE_OFFSET
from path_measurements.errors import Validation_Error


def is_real_reply(reply):
	"""A reply that came from somewhere, as opposed to a timeout ({'x': '*'})."""
	return bool(reply.get('from')) and reply.get('x') != '*'

def get_hops(trace):
	"""Hops of a RIPE Atlas traceroute result. Failed measurements have no 'result' list."""
	hops = trace.get('result')
	if not isinstance(hops, list):
		return []
	return hops

def get_replies(hop):
	# hops can carry {'error': ...} instead of replies
	replies = hop.get('result')
	if not isinstance(replies, list):
		return []
	return replies

def first_reply_addresses(trace):
	"""For each hop, the first address that answered (None if nothing did)."""
	ret = []
	for hop in get_hops(trace):
		addr = None
		for reply in get_replies(hop):
			if is_real_reply(reply):
				addr = reply['from']
				break
		ret.append(addr)
	return ret

def path_signature(trace):
	return "".join(addr + "," for addr in first_reply_addresses(trace) if addr is not None)

def is_incomplete(trace):
	"""A path is incomplete if nobody answered at its last hop, whatever happened before."""
	hops = get_hops(trace)
	if len(hops) == 0:
		return False
	return not any(is_real_reply(reply) for reply in get_replies(hops[-1]))

class ASN_Summary:
	"""How often an ASN showed up across traceroutes, and where."""
	def __init__(self, asn, name, occurrences, percentage, avg_hop_start, avg_hop_end, hop_positions):
		self.asn = asn
		self.name = name
		self.occurrences = occurrences
		self.percentage = percentage
		self.avg_hop_start = avg_hop_start
		self.avg_hop_end = avg_hop_end
		self.hop_positions = hop_positions

	def to_dict(self):
		return dict(self.__dict__)

	def __repr__(self):
		return "ASN_Summary(AS{} {}, {}/{:.1f}%, hops {}-{})".format(self.asn, self.name,
			self.occurrences, self.percentage, self.avg_hop_start, self.avg_hop_end)

Path_Stats = namedtuple("Path_Stats", ["unique_paths", "avg_hops", "max_hops", "incomplete_paths"])

class Path_Analyzer:
	"""Finds the ASNs that most traceroutes in a measurement cross."""
	def __init__(self, asn_resolver, hop_range_offset=HOP_RANGE_OFFSET):
		self.asn_resolver = asn_resolver
		self.hop_range_offset = hop_range_offset

	def get_asn_observations(self, traces):
		"""Returns ASN -> {'occurrences': # traces it appears in, 'hop_positions': [...]}.
			An ASN counts once per trace, but we keep every hop it was seen at."""
		every_ip = [reply['from'] for trace in traces for hop in get_hops(trace)
			for reply in get_replies(hop) if is_real_reply(reply)]
		self.asn_resolver.prefetch(every_ip)

		asn_stats = {}
		for trace in traces:
			seen_in_trace = set()
			for i, hop in enumerate(get_hops(trace)):
				hop_position = hop.get('hop', i + 1)
				seen_at_hop = set()
				for reply in get_replies(hop):
					if not is_real_reply(reply): continue
					asn = self.asn_resolver.resolve_asn(reply['from'])
					if asn is None or asn in seen_at_hop: continue
					seen_at_hop.add(asn)
					try:
						asn_stats[asn]
					except KeyError:
						asn_stats[asn] = {'occurrences': 0, 'hop_positions': []}
					if asn not in seen_in_trace:
						asn_stats[asn]['occurrences'] += 1
						seen_in_trace.add(asn)
					asn_stats[asn]['hop_positions'].append(hop_position)
		return asn_stats

	def analyze_common_asns(self, traces, threshold):
		"""ASNs present in at least floor(threshold * len(traces)) traces, most common first."""
		total = len(traces)
		if total == 0:
			raise Validation_Error("no results to analyze")
		if not 0 <= threshold <= 1:
			raise Validation_Error("threshold must be between 0 and 1, got {}".format(threshold))

		asn_stats = self.get_asn_observations(traces)
		min_occurrences = int(threshold * total)

		common_asns = []
		for asn in sorted(asn_stats):
			stats = asn_stats[asn]
			if stats['occurrences'] < min_occurrences: continue
			avg_hop = sum(stats['hop_positions']) // len(stats['hop_positions'])
			common_asns.append(ASN_Summary(
				asn=asn,
				name=self.asn_resolver.resolve_name(asn),
				occurrences=stats['occurrences'],
				percentage=stats['occurrences'] / total * 100,
				avg_hop_start=avg_hop,
				avg_hop_end=avg_hop + self.hop_range_offset, # approximate range
				hop_positions=list(stats['hop_positions']),
			))
		logging.info("{} of {} ASNs seen are in at least {} of {} paths".format(
			len(common_asns), len(asn_stats), min_occurrences, total))
		return sorted(common_asns, key=lambda el : -1 * el.percentage)

	@staticmethod
	def calculate_path_stats(traces):
		"""Path diversity: number of distinct first-reply paths, average and max number of
			responsive hops, and the number of paths that end in silence."""
		if len(traces) == 0:
			return Path_Stats(0, 0.0, 0, 0)
		signatures = set()
		hop_counts = []
		n_incomplete = 0
		for trace in traces:
			first_replies = first_reply_addresses(trace)
			signatures.add(path_signature(trace))
			hop_counts.append(sum(1 for addr in first_replies if addr is not None))
			if is_incomplete(trace):
				n_incomplete += 1
		return Path_Stats(len(signatures), float(np.mean(hop_counts)), int(np.max(hop_counts)), n_incomplete)
