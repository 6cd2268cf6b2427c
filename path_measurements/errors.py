class Validation_Error(ValueError):
	"""Bad or empty input. Never retried."""
	def __init__(self, msg, **partial):
		super().__init__(msg)
		# whatever we computed before failing, e.g. asns_without_probes
		self.partial = partial
		for k,v in partial.items():
			setattr(self, k, v)

class Transient_Remote_Error(Exception):
	"""Network or HTTP failure talking to a remote service. Callers retry or treat it as a miss."""
	pass

class Terminal_Remote_Failure(Exception):
	"""The remote side told us explicitly that it won't do what we asked."""
	pass
