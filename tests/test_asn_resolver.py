import socket, threading, time
from concurrent.futures import ThreadPoolExecutor

import pytest

from path_measurements.asn_resolver import (ASN_Resolver, RIPEstat_Lookup, Cymru_Lookup,
	placeholder_name)
from path_measurements import asn_resolver
from path_measurements.errors import Transient_Remote_Error

from conftest import Fake_Lookup


def test_second_resolve_is_a_cache_hit():
	lookup = Fake_Lookup(asns={"193.0.0.1": 3333})
	resolver = ASN_Resolver(lookup)
	assert resolver.resolve_asn("193.0.0.1") == 3333
	assert resolver.resolve_asn("193.0.0.1") == 3333
	assert lookup.asn_calls == ["193.0.0.1"]

def test_failed_lookup_is_not_cached():
	lookup = Fake_Lookup(asns={"8.8.8.8": 15169}, failing=["8.8.8.8"])
	resolver = ASN_Resolver(lookup)
	assert resolver.resolve_asn("8.8.8.8") is None
	lookup.failing = set()
	assert resolver.resolve_asn("8.8.8.8") == 15169
	assert lookup.asn_calls == ["8.8.8.8", "8.8.8.8"]

def test_unknown_address_is_not_cached():
	lookup = Fake_Lookup()
	resolver = ASN_Resolver(lookup)
	assert resolver.resolve_asn("1.1.1.1") is None
	assert resolver.resolve_asn("1.1.1.1") is None
	assert len(lookup.asn_calls) == 2

@pytest.mark.parametrize("addr", ["", "*", None, "10.1.2.3", "192.168.1.1", "127.0.0.1", "not an ip"])
def test_private_and_junk_addresses_skip_lookup(addr):
	lookup = Fake_Lookup(asns={addr: 1})
	resolver = ASN_Resolver(lookup)
	assert resolver.resolve_asn(addr) is None
	assert lookup.asn_calls == []

def test_name_lookup_and_placeholder():
	lookup = Fake_Lookup(names={3333: "RIPE-NCC-AS Reseaux IP Europeens Network Coordination Centre (RIPE NCC)"},
		failing=[64500])
	resolver = ASN_Resolver(lookup)
	assert resolver.resolve_name(3333).startswith("RIPE-NCC-AS")
	resolver.resolve_name(3333)
	assert lookup.name_calls == [3333]
	# failures and unknown ASNs get a placeholder, and are asked about again next time
	assert resolver.resolve_name(64500) == "AS64500"
	assert resolver.resolve_name(64501) == "AS64501"
	assert resolver.resolve_name(64501) == placeholder_name(64501)
	assert lookup.name_calls.count(64501) == 2

def test_holder_from_asn_lookup_seeds_name_cache():
	lookup = Fake_Lookup(asns={"8.8.8.8": 15169}, holders={15169: "GOOGLE, US"})
	resolver = ASN_Resolver(lookup)
	resolver.resolve_asn("8.8.8.8")
	assert resolver.resolve_name(15169) == "GOOGLE, US"
	assert lookup.name_calls == []

def test_prefetch_resolves_each_public_address_once():
	addrs = ["193.0.0.1", "193.0.0.1", "8.8.8.8", "10.0.0.1", "*"]
	lookup = Fake_Lookup(asns={"193.0.0.1": 3333, "8.8.8.8": 15169})
	resolver = ASN_Resolver(lookup)
	resolver.prefetch(addrs)
	assert sorted(lookup.asn_calls) == ["193.0.0.1", "8.8.8.8"]
	assert resolver.ip_to_asn == {"193.0.0.1": 3333, "8.8.8.8": 15169}
	resolver.prefetch(addrs)
	assert len(lookup.asn_calls) == 2

def test_concurrent_lookups_are_bounded():
	"""No more than max_concurrent lookups are ever in flight."""
	class Slow_Lookup(Fake_Lookup):
		def __init__(self):
			super().__init__()
			self.lock = threading.Lock()
			self.in_flight = 0
			self.max_in_flight = 0

		def lookup_asn(self, addr):
			with self.lock:
				self.in_flight += 1
				self.max_in_flight = max(self.max_in_flight, self.in_flight)
			time.sleep(0.01)
			with self.lock:
				self.in_flight -= 1
			return 64496, None

	lookup = Slow_Lookup()
	resolver = ASN_Resolver(lookup, max_concurrent=3)
	resolver.prefetch(["193.0.{}.1".format(i) for i in range(30)], max_workers=10)
	assert lookup.max_in_flight <= 3
	assert len(resolver.ip_to_asn) == 30


class Fake_Response:
	def __init__(self, payload, status_code=200):
		self.payload = payload
		self.status_code = status_code

	def raise_for_status(self):
		if self.status_code >= 400:
			raise asn_resolver.requests.exceptions.HTTPError("{} error".format(self.status_code))

	def json(self):
		return self.payload

class Fake_Session:
	def __init__(self, response):
		self.response = response
		self.calls = []

	def get(self, url, params=None, timeout=None):
		self.calls.append((url, params))
		if isinstance(self.response, Exception):
			raise self.response
		return self.response

def test_ripestat_lookup():
	session = Fake_Session(Fake_Response({"data": {"asns": ["3333"], "prefix": "193.0.0.0/21"}}))
	lookup = RIPEstat_Lookup(session=session)
	assert lookup.lookup_asn("193.0.0.1") == (3333, None)
	assert session.calls[0] == ("https://stat.ripe.net/data/network-info/data.json", {"resource": "193.0.0.1"})

def test_ripestat_lookup_no_origin():
	lookup = RIPEstat_Lookup(session=Fake_Session(Fake_Response({"data": {"asns": [], "prefix": None}})))
	assert lookup.lookup_asn("193.0.0.1") == (None, None)

def test_ripestat_name():
	session = Fake_Session(Fake_Response({"data": {"holder": "GOOGLE - Google LLC"}}))
	assert RIPEstat_Lookup(session=session).lookup_name(15169) == "GOOGLE - Google LLC"
	assert session.calls[0][1] == {"resource": "AS15169"}

def test_ripestat_errors_are_transient():
	lookup = RIPEstat_Lookup(session=Fake_Session(Fake_Response({}, status_code=503)))
	with pytest.raises(Transient_Remote_Error):
		lookup.lookup_asn("193.0.0.1")
	lookup = RIPEstat_Lookup(session=Fake_Session(asn_resolver.requests.exceptions.ConnectionError("down")))
	with pytest.raises(Transient_Remote_Error):
		lookup.lookup_name(3333)

def test_cymru_lookup(monkeypatch):
	class Record:
		def __init__(self, asn, owner):
			self.asn = asn
			self.owner = owner

	class Fake_Client:
		def lookup(self, addr):
			return {"8.8.8.8": Record("15169", "GOOGLE, US"), "1.2.3.4": Record("NA", "NA"),
				"104.16.0.1": Record("13335 209242", "CLOUDFLARENET, US")}[addr]

	monkeypatch.setattr(asn_resolver, "CymruClient", Fake_Client)
	lookup = Cymru_Lookup(name_lookup=Fake_Lookup(names={15169: "GOOGLE"}))
	assert lookup.lookup_asn("8.8.8.8") == (15169, "GOOGLE, US")
	assert lookup.lookup_asn("1.2.3.4") == (None, None)
	assert lookup.lookup_asn("104.16.0.1") == (13335, "CLOUDFLARENET, US")
	assert lookup.lookup_name(15169) == "GOOGLE"

class Cymru_Record:
	def __init__(self, asn, owner):
		self.asn = asn
		self.owner = owner

class Single_Connection_Client:
	"""Like cymruwhois.Client: one connection, so overlapping calls would mix up replies."""
	table = {"193.0.{}.1".format(i): Cymru_Record(str(64496 + i), "AS-{}".format(i)) for i in range(40)}

	def __init__(self):
		self.lock = threading.Lock()
		self.in_flight = 0
		self.max_in_flight = 0
		self.single_calls = []
		self.bulk_calls = []

	def _enter(self):
		with self.lock:
			self.in_flight += 1
			self.max_in_flight = max(self.max_in_flight, self.in_flight)
		time.sleep(0.005)

	def _leave(self):
		with self.lock:
			self.in_flight -= 1

	def lookup(self, addr):
		self._enter()
		try:
			self.single_calls.append(addr)
			if addr not in self.table:
				# what cymruwhois does on "Error: no ASN or IP match"
				return list([])[0]
			return self.table[addr]
		finally:
			self._leave()

	def lookupmany_dict(self, addrs):
		self._enter()
		try:
			self.bulk_calls.append(list(addrs))
			return {addr: self.table[addr] for addr in addrs if addr in self.table}
		finally:
			self._leave()

def test_cymru_prefetch_is_one_bulk_query(monkeypatch):
	"""Prefetching through Cymru sends every address over the one connection in one batch."""
	monkeypatch.setattr(asn_resolver, "CymruClient", Single_Connection_Client)
	lookup = Cymru_Lookup(name_lookup=Fake_Lookup())
	resolver = ASN_Resolver(lookup)
	addrs = sorted(Single_Connection_Client.table) + ["8.8.4.4"]
	resolver.prefetch(addrs)

	client = lookup.client
	assert len(client.bulk_calls) == 1
	assert sorted(client.bulk_calls[0]) == sorted(addrs)
	assert client.single_calls == []
	for i in range(40):
		assert resolver.resolve_asn("193.0.{}.1".format(i)) == 64496 + i
	assert resolver.resolve_name(64500) == "AS-4"
	assert "8.8.4.4" not in resolver.ip_to_asn

def test_cymru_lookups_never_overlap(monkeypatch):
	"""Concurrent resolve_asn calls take turns on the Cymru connection."""
	monkeypatch.setattr(asn_resolver, "CymruClient", Single_Connection_Client)
	lookup = Cymru_Lookup(name_lookup=Fake_Lookup())
	resolver = ASN_Resolver(lookup, max_concurrent=8)
	addrs = sorted(Single_Connection_Client.table)
	with ThreadPoolExecutor(max_workers=8) as executor:
		asns = list(executor.map(resolver.resolve_asn, addrs))
	assert lookup.client.max_in_flight == 1
	assert asns == [int(Single_Connection_Client.table[addr].asn) for addr in addrs]

def test_cymru_no_match_is_a_miss(monkeypatch):
	monkeypatch.setattr(asn_resolver, "CymruClient", Single_Connection_Client)
	lookup = Cymru_Lookup(name_lookup=Fake_Lookup())
	assert lookup.lookup_asn("8.8.4.4") == (None, None)
	assert ASN_Resolver(lookup).resolve_asn("8.8.4.4") is None

def test_cymru_bulk_failure_leaves_cache_empty(monkeypatch):
	class Broken_Client(Single_Connection_Client):
		def lookupmany_dict(self, addrs):
			raise socket.timeout("timed out")

	monkeypatch.setattr(asn_resolver, "CymruClient", Broken_Client)
	resolver = ASN_Resolver(Cymru_Lookup(name_lookup=Fake_Lookup()))
	resolver.prefetch(["193.0.1.1", "193.0.2.1"])
	assert resolver.ip_to_asn == {}
