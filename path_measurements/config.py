import os

from path_measurements.errors import Validation_Error

# Constraints we have to work with imposed by RIPE Atlas
MAX_PROBES_PER_MEAS = 1000
ATLAS_MEASUREMENT_URL = "https://atlas.ripe.net/measurements/{}"

# Measurement status codes, from the RIPE Atlas API
# 0=Specified, 1=Scheduled, 2=Ongoing, 4=Stopped, 5=Forced to stop, 6=No suitable probes, 7=Failed, 8=Archived
STATUS_ONGOING = 2
STATUS_STOPPED = 4
STATUS_FORCED_STOP = 5
STATUS_NO_SUITABLE_PROBES = 6
STATUS_FAILED = 7
SUCCESS_STATUSES = {STATUS_STOPPED: "stopped", STATUS_FORCED_STOP: "forced to stop"}
FAILURE_STATUSES = {STATUS_NO_SUITABLE_PROBES: "no suitable probes", STATUS_FAILED: "measurement failed"}

POLL_INTERVAL = 3 # seconds between status checks
MEASUREMENT_TIMEOUT = 5 * 60 # seconds before we ask whether to keep waiting

TRACEROUTE_DEFAULTS = {
	"af": 4,
	"protocol": "ICMP",
	"packets": 3,
	"size": 48,
	"max_hops": 40,
	"paris": 16,
	"response_timeout": 4000,
}

DEFAULT_THRESHOLD = 0.8
HOP_RANGE_OFFSET = 2 # reported hop range is avg position to avg position + offset

# ASN lookups
MAX_CONCURRENT_ASN_LOOKUPS = 8 # downstream services rate limit us
ASN_LOOKUP_TIMEOUT = 5
RIPESTAT_URL = "https://stat.ripe.net/data/{}/data.json"

AWS_IP_RANGES_URL = "https://ip-ranges.amazonaws.com/ip-ranges.json"
AWS_TARGET_PREFIX = "aws_"
AWS_SERVICES = ["EC2", "AMAZON"]
AWS_TIMEOUT = 10

# private IP space -- from https://github.com/zmap/zmap/blob/master/conf/blacklist.conf
private_ips = [("0.0.0.0", 8), ("10.0.0.0", 8), ("100.64.0.0", 10), ("127.0.0.0",8), ("169.254.0.0",16),
	("172.16.0.0", 12), ("192.0.0.0", 24), ("192.0.2.0", 24), ("192.88.99.0", 24), ("192.168.0.0", 16), ("198.18.0.0", 15),
	("198.51.100.0", 24), ("203.0.113.0", 24), ("240.0.0.0",4), ("255.255.255.255", 32), ("224.0.0.0",4)]

# API key sources, highest priority first
API_KEY_ENV = "RIPE_ATLAS_API"
API_KEY_NAMES = ["RIPE_ATLAS_API", "RIPE_ATLAS_KEY"]
HOME_KEY_FN = os.path.join("~", ".env.key")
DEFAULT_KEY_FN = "env.key"


def read_key_file(key_fn):
	"""Reads KEY=VALUE lines from key_fn and returns the API key, or None if the file
		doesn't name one."""
	api_key = None
	with open(key_fn, 'r') as f:
		for row in f:
			row = row.strip()
			if row == "" or row.startswith("#"): continue
			if "=" not in row: continue
			k,v = row.split("=", 1)
			if k.strip() in API_KEY_NAMES:
				api_key = v.strip().strip('"')
	return api_key or None

def load_api_key(config_fn=DEFAULT_KEY_FN):
	"""Finds the RIPE Atlas API key. Environment wins, then ~/.env.key, then config_fn."""
	api_key = os.environ.get(API_KEY_ENV)
	if api_key:
		return api_key

	home_key_fn = os.path.expanduser(HOME_KEY_FN)
	if os.path.exists(home_key_fn):
		api_key = read_key_file(home_key_fn)
		if api_key:
			return api_key

	if config_fn:
		try:
			api_key = read_key_file(config_fn)
		except OSError as e:
			raise Validation_Error("Failed to load config from {}: {}".format(config_fn, e))
		if api_key:
			return api_key
		raise Validation_Error("{} not found in config file {}".format(
			" or ".join(API_KEY_NAMES), config_fn))

	raise Validation_Error("RIPE Atlas API key not found. Please set {} or create {}".format(
		API_KEY_ENV, HOME_KEY_FN))
