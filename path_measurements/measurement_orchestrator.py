### Submits a traceroute measurement and waits for RIPE Atlas to finish it.
### Atlas is slow to update statuses and its API fails now and then, so waiting is
### an explicit little state machine: every wait ends in a TICK or the DEADLINE,
### and each tick either keeps us polling or moves us to a terminal state.

import logging, time

from path_measurements.config import (POLL_INTERVAL, MEASUREMENT_TIMEOUT, SUCCESS_STATUSES,
	FAILURE_STATUSES)
from path_measurements.errors import (Validation_Error, Transient_Remote_Error,
	Terminal_Remote_Failure)

SUBMITTED = "submitted"
POLLING = "polling"
COMPLETED = "completed"
FAILED = "failed"
TIMED_OUT = "timed_out"
TERMINAL_STATES = (COMPLETED, FAILED)

# what ended a wait
TICK = "tick"
DEADLINE = "deadline"


class Measurement_Job:
	def __init__(self, msm_id, target, probe_ids):
		self.msm_id = msm_id
		self.target = target
		self.probe_ids = tuple(probe_ids)
		self.state = SUBMITTED
		self.reason = None
		self.results = None # latest results we managed to pull

	@property
	def n_expected(self):
		return len(self.probe_ids)

class Measurement_Outcome:
	def __init__(self, state, msm_id, reason=None, results=None, n_ticks=0):
		self.state = state
		self.msm_id = msm_id
		self.reason = reason
		self.results = results
		self.n_ticks = n_ticks

	@property
	def completed(self):
		return self.state == COMPLETED

	def __repr__(self):
		return "Measurement_Outcome({}, msm {}, reason={}, ticks={})".format(
			self.state, self.msm_id, self.reason, self.n_ticks)

class Measurement_Orchestrator:
	"""Drives measurements through submitted -> polling -> {completed, failed, timed_out}.
		clock and wait are injectable so tests don't have to sleep."""
	def __init__(self, atlas, clock=time.monotonic, wait=time.sleep):
		self.atlas = atlas
		self.clock = clock
		self.wait = wait
		self.jobs = {}

	def submit(self, target, probe_ids, description):
		if not target:
			raise Validation_Error("no target to measure towards")
		if len(probe_ids) == 0:
			raise Validation_Error("no probes to measure from")
		try:
			msm_id = self.atlas.create_traceroute(target, probe_ids, description)
		except Transient_Remote_Error as e:
			# a create that doesn't go through is not something we retry blindly (credits)
			raise Terminal_Remote_Failure(str(e))
		self.jobs[msm_id] = Measurement_Job(msm_id, target, probe_ids)
		logging.info("Created measurement {} towards {} from {} probes".format(
			msm_id, target, len(probe_ids)))
		return msm_id

	def get_job(self, msm_id):
		try:
			return self.jobs[msm_id]
		except KeyError:
			raise Validation_Error("unknown measurement {}".format(msm_id))

	def await_completion(self, msm_id, poll_interval=POLL_INTERVAL, hard_timeout=MEASUREMENT_TIMEOUT):
		"""Polls until the measurement completes, fails, or hard_timeout seconds pass.
			A timed out job can be awaited again to keep waiting."""
		if poll_interval <= 0 or hard_timeout <= 0:
			raise Validation_Error("poll interval and timeout must be positive")
		job = self.get_job(msm_id)
		if job.state in TERMINAL_STATES:
			return Measurement_Outcome(job.state, msm_id, job.reason, job.results)

		job.state = POLLING
		n_ticks = 0
		deadline = self.clock() + hard_timeout
		next_tick = self.clock() + poll_interval
		while job.state == POLLING:
			signal = self._wait_for_signal(next_tick, deadline)
			if signal == DEADLINE:
				job.state = TIMED_OUT
				job.reason = "no result after {} seconds".format(hard_timeout)
				break
			n_ticks += 1
			job.state, job.reason = self._tick(job)
			next_tick = self.clock() + poll_interval

		logging.info("Measurement {} {} after {} polls ({})".format(msm_id, job.state, n_ticks, job.reason))
		return Measurement_Outcome(job.state, msm_id, job.reason, job.results, n_ticks)

	def _wait_for_signal(self, next_tick, deadline):
		"""Sleeps until whichever of the next tick or the deadline comes first."""
		now = self.clock()
		if deadline < next_tick:
			self.wait(max(0, deadline - now))
			return DEADLINE
		self.wait(max(0, next_tick - now))
		return TICK

	def _tick(self, job):
		"""One poll. Returns the (state, reason) the job moves to."""
		# Fast path: every probe has reported, no need to wait for Atlas to mark it stopped
		try:
			results = self.atlas.get_measurement_results(job.msm_id)
			job.results = results
			if len(results) == job.n_expected:
				return COMPLETED, "all {} probes reported".format(job.n_expected)
		except Transient_Remote_Error as e:
			logging.warning("Pulling results of {} failed, will retry: {}".format(job.msm_id, e))

		# Slow path: official status
		try:
			status = self.atlas.get_measurement_status(job.msm_id)
		except Transient_Remote_Error as e:
			logging.warning("Checking status of {} failed, will retry: {}".format(job.msm_id, e))
			return POLLING, None
		status_id = status['status']['id']
		if status_id in SUCCESS_STATUSES:
			return COMPLETED, SUCCESS_STATUSES[status_id]
		if status_id in FAILURE_STATUSES:
			return FAILED, FAILURE_STATUSES[status_id]
		logging.debug("Measurement {} status {} ({} results so far)".format(job.msm_id,
			status['status'].get('name', status_id), len(job.results or [])))
		return POLLING, None
