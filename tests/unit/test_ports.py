"""Unit tests for port allocation."""

from __future__ import annotations

import socket

import pytest

from supascale.engine.models import PortBlock
from supascale.engine.ports import PORT_INCREMENT, allocate, busy_ports
from supascale.errors import PortRangeError


class TestAllocate:
    def test_default_block(self):
        block, next_watermark = allocate(54321)
        assert block.api == 54321
        assert block.db == 54322
        assert block.shadow == 54320
        assert block.studio == 54323
        assert block.inbucket == 54324
        assert block.smtp == 54325
        assert block.pop3 == 54326
        assert block.analytics == 54327
        assert block.pooler == 54329
        assert block.kong_https == 54764
        assert next_watermark == 55321

    def test_ports_unique_within_block(self):
        block, _ = allocate(54321)
        assert len(set(block.values())) == 10

    def test_sequence_is_strided_and_disjoint(self):
        watermark = 54321
        seen: set[int] = set()
        for i in range(8):
            block, watermark = allocate(watermark)
            assert block.api == 54321 + PORT_INCREMENT * i
            ports = set(block.values())
            assert not ports & seen
            seen |= ports

    def test_block_past_max_port_raises(self):
        with pytest.raises(PortRangeError):
            allocate(65321)

    def test_block_below_one_raises(self):
        with pytest.raises(PortRangeError):
            allocate(1)


class TestBusyPorts:
    def test_reports_listening_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]
            block = PortBlock(
                api=port, db=1, shadow=2, studio=3, inbucket=4,
                smtp=5, pop3=6, pooler=7, analytics=8, kong_https=9,
            )
            assert port in busy_ports(block)
