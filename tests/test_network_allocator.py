"""
Tests for private subnet allocation.
"""

import pytest

from twergstack.environment.network_allocator import (
    extract_octets,
    next_network_base,
    next_octet,
)
from twergstack.errors import AllocationError, NoBaselineNetwork


class TestExtractOctets:
    def test_sorted_and_deduplicated(self):
        subnets = ["172.19.0.0/16", "172.16.0.0/16", "172.19.0.0/16", "172.17.0.0/16"]
        assert extract_octets(subnets) == [16, 17, 19]

    def test_unrelated_subnets_ignored(self):
        subnets = ["10.0.0.0/8", "172.20.1.0/24", "192.168.0.0/16", "172.18.0.0/16"]
        assert extract_octets(subnets) == [18]


class TestNextOctet:
    def test_fills_first_gap(self):
        assert next_octet([16, 17, 19]) == 18

    def test_appends_after_contiguous_run(self):
        assert next_octet([16, 17, 18]) == 19

    def test_single_value(self):
        assert next_octet([5]) == 6

    def test_gap_relative_to_lowest_octet(self):
        """Values below the lowest existing octet are never chosen."""
        assert next_octet([20, 22]) == 21

    def test_empty_list_has_no_baseline(self):
        with pytest.raises(NoBaselineNetwork):
            next_octet([])


class TestNextNetworkBase:
    def test_gap_is_reused(self):
        subnets = ["172.16.0.0/16", "172.17.0.0/16", "172.19.0.0/16"]
        assert next_network_base(subnets) == "172.18"

    def test_after_last_network(self):
        subnets = ["172.16.0.0/16", "172.17.0.0/16", "172.18.0.0/16"]
        assert next_network_base(subnets) == "172.19"

    def test_duplicate_subnets_do_not_open_false_gaps(self):
        subnets = ["172.17.0.0/16", "172.17.0.0/16", "172.18.0.0/16"]
        assert next_network_base(subnets) == "172.19"

    def test_only_foreign_subnets_has_no_baseline(self):
        with pytest.raises(NoBaselineNetwork):
            next_network_base(["10.10.0.0/16", "fd00::/64"])

    def test_no_networks_has_no_baseline(self):
        with pytest.raises(NoBaselineNetwork):
            next_network_base([])

    def test_octet_overflow(self):
        with pytest.raises(AllocationError, match="after 172.255"):
            next_network_base(["172.254.0.0/16", "172.255.0.0/16"])
