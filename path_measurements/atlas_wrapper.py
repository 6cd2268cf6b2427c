### Lower-level utilities for talking to RIPE Atlas
# a) finding probes in origin networks
# b) executing one-off traceroute measurements
# c) pulling measurement status and results

import logging

from ripe.atlas.cousteau import (AtlasRequest, AtlasResultsRequest, AtlasCreateRequest,
	AtlasSource, ProbeRequest, Traceroute as RipeTraceroute)
from ripe.atlas.cousteau.exceptions import APIResponseError
import requests

from path_measurements.config import TRACEROUTE_DEFAULTS
from path_measurements.errors import Transient_Remote_Error


class Atlas_Wrapper:
	"""Helper class with the handful of RIPE Atlas API calls we need."""
	def __init__(self, api_key=None):
		self.api_key = api_key

	def get_probes_by_asn(self, asns):
		"""Gets connected probes in asns. Returns a dict ASN -> list of probe IDs."""
		filters = {
			"asn_v4__in": ",".join(str(asn) for asn in asns),
			"status": 1, # connected
		}
		probes_by_asn = {}
		try:
			for probe in ProbeRequest(**filters):
				asn = probe.get('asn_v4')
				if not asn: continue
				try:
					probes_by_asn[asn].append(probe['id'])
				except KeyError:
					probes_by_asn[asn] = [probe['id']]
		except (APIResponseError, requests.exceptions.RequestException) as e:
			raise Transient_Remote_Error("Failed fetching probes for {}: {}".format(asns, e))
		logging.info("Found {} probes across {} of {} ASNs".format(
			sum(len(v) for v in probes_by_asn.values()), len(probes_by_asn), len(asns)))
		return probes_by_asn

	def create_traceroute(self, target, probe_ids, description, **kwargs):
		"""Launches a one-off traceroute from probe_ids to target. Returns the measurement ID."""
		definition = dict(TRACEROUTE_DEFAULTS)
		definition.update(kwargs)
		trcrt = RipeTraceroute(
			target=target,
			description=description,
			**definition
		)
		source = AtlasSource(
			type="probes",
			value=",".join(str(prb) for prb in probe_ids),
			requested=len(probe_ids),
		)
		atlas_request = AtlasCreateRequest(
			key=self.api_key,
			measurements=[trcrt],
			sources=[source],
			is_oneoff=True,
		)
		is_success, response = atlas_request.create()
		if not is_success:
			raise Transient_Remote_Error("Did not successfully create measurement : {}".format(response))
		try:
			return response["measurements"][0]
		except (KeyError, IndexError, TypeError):
			raise Transient_Remote_Error("No measurement ID returned : {}".format(response))

	def get_measurement_status(self, msm_id):
		"""Gets the measurement object, its status lives under ['status']['id']."""
		path = "/api/v2/measurements/{}/".format(msm_id)
		request = AtlasRequest(**{"url_path": path, "key": self.api_key})
		(is_success, response) = request.get()
		if not is_success:
			raise Transient_Remote_Error("Failed fetching status of {}: {}".format(msm_id, response))
		try:
			response['status']['id']
		except (KeyError, TypeError):
			raise Transient_Remote_Error("Malformed status for {}: {}".format(msm_id, response))
		return response

	def get_measurement_results(self, msm_id):
		"""Pulls whatever results the probes have reported so far."""
		request = AtlasResultsRequest(**{"msm_id": msm_id, "key": self.api_key})
		(is_success, results) = request.create()
		if not is_success:
			raise Transient_Remote_Error("Failed fetching results of {}: {}".format(msm_id, results))
		if not isinstance(results, list):
			raise Transient_Remote_Error("Malformed results for {}: {}".format(msm_id, results))
		return results
