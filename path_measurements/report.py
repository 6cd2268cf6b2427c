### Plain-text summary of a traceroute campaign

import time

from path_measurements.config import ATLAS_MEASUREMENT_URL

SEPARATOR = "-" * 62


def format_duration(seconds):
	if seconds < 60:
		return "{:.0f} seconds".format(seconds)
	elif seconds < 3600:
		return "{:.1f} minutes".format(seconds / 60)
	return "{:.1f} hours".format(seconds / 3600)

def format_asn_list(asns):
	return ", ".join("AS{}".format(asn) for asn in asns)

def generate_report(report):
	"""report is a dict built by run_traceroute."""
	n_probes = report['total_probes']
	n_traces = report['total_traces']
	out_str = "RIPE Atlas Traceroute Analysis Report\n{}\n\n".format(SEPARATOR)

	out_str += "Measurement {} towards {}\n".format(report['msm_id'], report['target'])
	out_str += "  Created: {}\n".format(time.strftime("%Y-%m-%d %H:%M:%S %Z", time.localtime(report['created_at'])))
	out_str += "  Duration: {}\n".format(format_duration(report['duration']))
	out_str += "  View online: {}\n\n".format(ATLAS_MEASUREMENT_URL.format(report['msm_id']))

	out_str += "Probe Distribution ({} ASNs requested):\n".format(len(report['requested_asns']))
	if len(report['asns_without_probes']) > 0:
		out_str += "  No probes in {}\n".format(format_asn_list(report['asns_without_probes']))
	for alloc in report['allocations']:
		pct = alloc.allocated / n_probes * 100 if n_probes else 0
		out_str += "  AS{:<8} {:>4} of {:>4} probes ({:5.1f}%)\n".format(alloc.asn, alloc.allocated,
			alloc.available, pct)
	out_str += "  Total: {} probes\n\n".format(n_probes)

	out_str += "Common Path Analysis (threshold {:.1f}% = {}/{} traceroutes):\n".format(
		report['threshold'] * 100, int(report['threshold'] * n_traces), n_traces)
	if len(report['common_asns']) == 0:
		out_str += "  No common ASNs found meeting the threshold.\n"
	for i, summary in enumerate(report['common_asns']):
		out_str += "  {}. AS{} - {}\n".format(i + 1, summary.asn, summary.name)
		out_str += "     Frequency: {:.1f}% ({}/{} traceroutes)\n".format(summary.percentage,
			summary.occurrences, n_traces)
		out_str += "     Average position: Hop {}-{}\n".format(summary.avg_hop_start, summary.avg_hop_end)
	out_str += "\n"

	stats = report['path_stats']
	out_str += "Path Diversity:\n"
	out_str += "  Unique paths: {}\n".format(stats.unique_paths)
	out_str += "  Average hops: {:.1f}\n".format(stats.avg_hops)
	out_str += "  Max hops reached: {}\n".format(stats.max_hops)
	pct_incomplete = stats.incomplete_paths / n_traces * 100 if n_traces else 0
	out_str += "  Incomplete paths: {} ({:.1f}%)\n".format(stats.incomplete_paths, pct_incomplete)
	return out_str + SEPARATOR + "\n"
