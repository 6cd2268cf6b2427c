### IP -> ASN and ASN -> name resolution, cached for the life of the process.
### Lookups hit free public services that rate limit us, so at most
### MAX_CONCURRENT_ASN_LOOKUPS of them are in flight at any time.

import logging, socket, threading
from concurrent.futures import ThreadPoolExecutor

import requests, tqdm
from cymruwhois import Client as CymruClient

from path_measurements.config import (MAX_CONCURRENT_ASN_LOOKUPS, ASN_LOOKUP_TIMEOUT,
	RIPESTAT_URL)
from path_measurements.errors import Transient_Remote_Error
from path_measurements.helpers import is_bad_ip


def placeholder_name(asn):
	return "AS{}".format(asn)

class RIPEstat_Lookup:
	"""Looks up prefixes and holders with the RIPEstat data API."""
	def __init__(self, timeout=ASN_LOOKUP_TIMEOUT, session=None):
		self.timeout = timeout
		self.session = session or requests.Session()

	def _get(self, data_call, resource):
		try:
			r = self.session.get(RIPESTAT_URL.format(data_call), params={"resource": resource},
				timeout=self.timeout)
			r.raise_for_status()
			return r.json()['data']
		except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as e:
			raise Transient_Remote_Error("RIPEstat {} lookup of {} failed: {}".format(data_call, resource, e))

	def lookup_asn(self, addr):
		asns = self._get("network-info", addr).get('asns') or []
		if asns == []:
			return None, None
		# MOAS prefixes list several origins, take the first like everyone else does
		return int(asns[0]), None

	def lookup_name(self, asn):
		return self._get("as-overview", placeholder_name(asn)).get('holder')

class Cymru_Lookup:
	"""Team Cymru whois through the cymruwhois library. Gives us the owner along with the ASN.
		The client holds one bulk whois connection, so only one thread talks to it at a time
		and many addresses go over it as one batch (lookup_many)."""
	def __init__(self, name_lookup=None):
		self.client = CymruClient()
		self.client_lock = threading.Lock()
		# cymruwhois only takes addresses, go elsewhere for bare ASNs
		self.name_lookup = name_lookup or RIPEstat_Lookup()

	@staticmethod
	def parse_record(r):
		if r is None or r.asn is None or r.asn == 'NA':
			return None, None
		# multi-origin answers look like '13335 209242'
		asn = int(str(r.asn).split()[0])
		owner = r.owner if r.owner and r.owner != 'NA' else None
		return asn, owner

	def lookup_asn(self, addr):
		try:
			with self.client_lock:
				r = self.client.lookup(addr)
		except IndexError:
			# "Error: no ASN or IP match", nothing comes back for addr
			return None, None
		except (socket.error, ValueError) as e:
			raise Transient_Remote_Error("Cymru lookup of {} failed: {}".format(addr, e))
		return self.parse_record(r)

	def lookup_many(self, addrs):
		"""One bulk query for all of addrs. Returns addr -> (asn, owner) for addrs Cymru knows."""
		try:
			with self.client_lock:
				records = self.client.lookupmany_dict(addrs)
		except (socket.error, ValueError) as e:
			raise Transient_Remote_Error("Cymru bulk lookup of {} addresses failed: {}".format(len(addrs), e))
		ret = {}
		for addr, r in records.items():
			asn, owner = self.parse_record(r)
			if asn is not None:
				ret[addr] = (asn, owner)
		return ret

	def lookup_name(self, asn):
		return self.name_lookup.lookup_name(asn)

class Pyasn_Lookup:
	"""Offline lookups against a pyasn database file (built with pyasn_util_convert.py)."""
	def __init__(self, asndb_file, name_lookup=None):
		import pyasn
		self.asndb = pyasn.pyasn(asndb_file)
		self.name_lookup = name_lookup or RIPEstat_Lookup()

	def lookup_asn(self, addr):
		try:
			asn, prefix = self.asndb.lookup(addr)
		except ValueError as e:
			raise Transient_Remote_Error("Could not parse addr {}: {}".format(addr, e))
		return asn, None

	def lookup_name(self, asn):
		return self.name_lookup.lookup_name(asn)

class ASN_Resolver:
	"""Owns the address -> ASN and ASN -> name caches. Share one instance across
		everything that needs ASNs. Failed lookups are never cached, so a later
		call for the same address tries again."""
	def __init__(self, lookup=None, max_concurrent=MAX_CONCURRENT_ASN_LOOKUPS):
		self.lookup = lookup or RIPEstat_Lookup()
		self.max_concurrent = max_concurrent
		self.ip_to_asn = {}
		self.asn_to_name = {}
		self.gate = threading.BoundedSemaphore(max_concurrent)
		self.insert_lock = threading.Lock()

	def resolve_asn(self, addr):
		"""Returns the ASN originating addr, or None if we don't know it (right now)."""
		if not addr or addr == "*": return None
		try:
			return self.ip_to_asn[addr]
		except KeyError:
			pass
		if is_bad_ip(addr): return None # don't resolve private IP addresses

		with self.gate:
			try:
				asn, holder = self.lookup.lookup_asn(addr)
			except Transient_Remote_Error as e:
				logging.debug("ASN lookup miss for {}: {}".format(addr, e))
				return None
		if asn is None:
			return None

		return self.insert_asn(addr, asn, holder)

	def insert_asn(self, addr, asn, holder=None):
		with self.insert_lock:
			self.ip_to_asn.setdefault(addr, asn)
			if holder:
				self.asn_to_name.setdefault(asn, holder)
			return self.ip_to_asn[addr]

	def resolve_name(self, asn):
		"""Human readable holder of asn. Falls back to 'AS<asn>' so there's always something to show."""
		try:
			return self.asn_to_name[asn]
		except KeyError:
			pass

		with self.gate:
			try:
				name = self.lookup.lookup_name(asn)
			except Transient_Remote_Error as e:
				logging.debug("Name lookup miss for AS{}: {}".format(asn, e))
				name = None
		if not name:
			return placeholder_name(asn)

		with self.insert_lock:
			self.asn_to_name.setdefault(asn, name)
			return self.asn_to_name[asn]

	def prefetch(self, addrs, max_workers=None):
		"""Resolves many addresses in parallel so later resolve_asn calls are cache hits."""
		dont_know = []
		for addr in set(addrs):
			if not addr or addr == "*" or addr in self.ip_to_asn: continue
			if is_bad_ip(addr): continue
			dont_know.append(addr)
		if dont_know == []: return

		# backends with a bulk query get the whole batch at once
		if hasattr(self.lookup, "lookup_many"):
			with self.gate:
				try:
					ret = self.lookup.lookup_many(sorted(dont_know))
				except Transient_Remote_Error as e:
					logging.warning("Bulk ASN lookup of {} addresses failed: {}".format(len(dont_know), e))
					return
			for addr, (asn, holder) in ret.items():
				self.insert_asn(addr, asn, holder)
			return

		max_workers = max_workers or self.max_concurrent
		with ThreadPoolExecutor(max_workers=max_workers) as executor:
			list(tqdm.tqdm(executor.map(self.resolve_asn, sorted(dont_know)), total=len(dont_know),
				desc="Resolving hop ASNs", disable=len(dont_know) < 20))
