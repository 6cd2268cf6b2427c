### Runs a traceroute campaign from probes in a set of ASNs towards one target and
### reports which ASNs most of the paths go through.
#   python -m path_measurements.run_traceroute --asns 5384,7713 --target 1.2.3.4
#   python -m path_measurements.run_traceroute --asns 5384,7713,9988 --target aws_us-west-2 --threshold 0.85
#   python -m path_measurements.run_traceroute --mode regions

import argparse, logging, sys, time

from path_measurements.config import (DEFAULT_KEY_FN, DEFAULT_THRESHOLD, MAX_PROBES_PER_MEAS,
	MEASUREMENT_TIMEOUT, POLL_INTERVAL, ATLAS_MEASUREMENT_URL, load_api_key)
from path_measurements.errors import (Validation_Error, Transient_Remote_Error,
	Terminal_Remote_Failure)
from path_measurements.helpers import parse_asn_list
from path_measurements.atlas_wrapper import Atlas_Wrapper
from path_measurements.probe_allocation import (allocate_probes, make_random_source,
	get_allocated_probe_ids)
from path_measurements.measurement_orchestrator import Measurement_Orchestrator, TIMED_OUT, FAILED
from path_measurements.asn_resolver import ASN_Resolver, RIPEstat_Lookup, Cymru_Lookup, Pyasn_Lookup
from path_measurements.path_analysis import Path_Analyzer
from path_measurements.target_resolver import resolve_target, list_aws_regions
from path_measurements.report import generate_report


def ask_yes_no(question, assume_yes=False):
	if assume_yes:
		return True
	response = input("{} (y/n): ".format(question)).strip().lower()
	return response in ("y", "yes")

def get_asn_lookup(args):
	if args.asn_source == "cymru":
		return Cymru_Lookup()
	elif args.asn_source == "pyasn":
		if args.asndb is None:
			raise Validation_Error("--asndb is required with --asn-source pyasn")
		return Pyasn_Lookup(args.asndb)
	return RIPEstat_Lookup()

def wait_for_measurement(orchestrator, msm_id, args):
	"""Waits on msm_id, asking the user whether to keep waiting each time we time out."""
	n_extensions = 0
	while True:
		outcome = orchestrator.await_completion(msm_id, poll_interval=args.poll_interval,
			hard_timeout=args.timeout)
		if outcome.state != TIMED_OUT:
			return outcome
		print("Measurement has been running for {} more seconds.".format(args.timeout))
		print("  Measurement URL: {}".format(ATLAS_MEASUREMENT_URL.format(msm_id)))
		# --yes keeps waiting once, so unattended runs still end
		if args.yes and n_extensions > 0:
			return outcome
		if not ask_yes_no("Wait for another {} seconds?".format(args.timeout), assume_yes=args.yes):
			return outcome
		n_extensions += 1

def run_traceroute(args):
	start_time = time.time()
	asns = parse_asn_list(args.asns)
	if not 0 <= args.threshold <= 1:
		raise Validation_Error("threshold must be between 0 and 1, got {}".format(args.threshold))
	asn_lookup = get_asn_lookup(args)
	atlas = Atlas_Wrapper(api_key=load_api_key(args.config))
	rng = make_random_source(args.seed)

	target = resolve_target(args.target, rng=rng)
	print("Target: {} ({})".format(args.target, target))

	print("Fetching probes for ASNs: {}".format(args.asns))
	probes_by_asn = atlas.get_probes_by_asn(asns)
	allocations, asns_without_probes = allocate_probes(probes_by_asn, asns,
		ceiling=args.max_probes, rng=rng)
	print("  ASNs with probes: {}".format([alloc.asn for alloc in allocations]))
	if len(asns_without_probes) > 0:
		print("  ASNs without probes: {}".format(asns_without_probes))
		if not ask_yes_no("Some ASNs have no available probes. Continue?", assume_yes=args.yes):
			print("Operation cancelled.")
			return 1

	probe_ids = get_allocated_probe_ids(allocations)
	orchestrator = Measurement_Orchestrator(atlas)
	description = "Traceroute to {} from ASNs {}".format(args.target, args.asns)
	msm_id = orchestrator.submit(target, probe_ids, description)
	print("Created measurement {} from {} probes: {}".format(msm_id, len(probe_ids),
		ATLAS_MEASUREMENT_URL.format(msm_id)))

	print("Waiting for measurement to complete...")
	outcome = wait_for_measurement(orchestrator, msm_id, args)
	if outcome.state == FAILED:
		print("Measurement {} failed: {}".format(msm_id, outcome.reason))
		return 1
	if outcome.state == TIMED_OUT:
		print("Measurement still running ({} results so far), check {} manually.".format(
			len(outcome.results or []), ATLAS_MEASUREMENT_URL.format(msm_id)))
		return 1

	try:
		results = atlas.get_measurement_results(msm_id)
	except Transient_Remote_Error as e:
		if not outcome.results:
			raise
		logging.warning("Re-pulling results failed, using the {} we have: {}".format(len(outcome.results), e))
		results = outcome.results
	print("Retrieved {} traceroute results".format(len(results)))

	analyzer = Path_Analyzer(ASN_Resolver(asn_lookup))
	common_asns = analyzer.analyze_common_asns(results, args.threshold)
	path_stats = analyzer.calculate_path_stats(results)

	print(generate_report({
		"msm_id": msm_id,
		"target": args.target,
		"created_at": start_time,
		"duration": time.time() - start_time,
		"requested_asns": asns,
		"asns_without_probes": asns_without_probes,
		"allocations": allocations,
		"total_probes": len(probe_ids),
		"total_traces": len(results),
		"threshold": args.threshold,
		"common_asns": common_asns,
		"path_stats": path_stats,
	}))
	return 0

def build_argparser():
	parser = argparse.ArgumentParser(description="RIPE Atlas traceroute analysis: which ASNs do paths from a set of networks share?")
	parser.add_argument("--mode", default="traceroute", choices=["traceroute", "regions"])
	parser.add_argument("--asns", help="Comma-separated list of ASNs to measure from")
	parser.add_argument("--target", help="Target IP, hostname or AWS region (e.g., aws_us-west-2)")
	parser.add_argument("--threshold", type=float, default=DEFAULT_THRESHOLD,
		help="Fraction of paths an ASN must appear in to be reported")
	parser.add_argument("--config", default=DEFAULT_KEY_FN, help="File holding RIPE_ATLAS_API=<key>")
	parser.add_argument("--timeout", type=float, default=MEASUREMENT_TIMEOUT,
		help="Seconds to wait for the measurement before asking whether to keep waiting")
	parser.add_argument("--poll-interval", type=float, default=POLL_INTERVAL)
	parser.add_argument("--max-probes", type=int, default=MAX_PROBES_PER_MEAS)
	parser.add_argument("--seed", type=int, default=None, help="Seed probe selection")
	parser.add_argument("--asn-source", default="ripestat", choices=["ripestat", "cymru", "pyasn"])
	parser.add_argument("--asndb", default=None, help="pyasn database file for --asn-source pyasn")
	parser.add_argument("--yes", action="store_true", help="Don't ask, continue")
	parser.add_argument("--verbose", action="store_true")
	return parser

def main(argv=None):
	parser = build_argparser()
	args = parser.parse_args(argv)
	logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
		format="%(asctime)s %(levelname)s %(message)s")

	if args.mode == "regions":
		try:
			print("\n".join(list_aws_regions()))
		except Transient_Remote_Error as e:
			print("Error: {}".format(e))
			return 1
		return 0

	if not args.asns or not args.target:
		parser.error("--asns and --target are required")
	try:
		return run_traceroute(args)
	except (Validation_Error, ValueError) as e:
		print("Error: {}".format(e))
	except Terminal_Remote_Failure as e:
		print("Error creating measurement: {}".format(e))
	except Transient_Remote_Error as e:
		print("Error talking to a remote service: {}".format(e))
	return 1

if __name__ == "__main__":
	sys.exit(main())
