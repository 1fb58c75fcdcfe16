#!/usr/bin/env python3
"""
End-to-end tests against an in-process feed server
"""

import json

import pytest

from feed_recovery.cli import main
from feed_recovery.client import FeedRecoveryClient, TransportSetupError
from feed_recovery.config import ClientConfig
from feed_recovery.stream_reassembler import StreamEnd

from conftest import HANG, make_frame

TIMEOUT = 0.3


def _config(port: int, tmp_path=None) -> ClientConfig:
    output = str(tmp_path / 'output.json') if tmp_path else 'output.json'
    return ClientConfig(host='127.0.0.1', port=port, timeout_sec=TIMEOUT, output_file=output)


class TestFeedRecoveryClient:
    """Full stream -> gap -> recovery runs"""

    def test_gap_recovered_after_idle_stream(self, feed_server, tmp_path):
        server = feed_server(
            stream_data=make_frame(1) + make_frame(2) + make_frame(4),
            resend={3: make_frame(3, symbol=b'AB\x00\x00')},
            idle_after_stream=True,
            chunk_size=5,
        )
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert client.stream_result.outcome == StreamEnd.TIMED_OUT
        assert client.gap_report.missing == [3]
        assert server.resend_requests == [3]
        assert store.sequences() == [1, 2, 3, 4]

        client.write(store)
        data = json.loads((tmp_path / 'output.json').read_text())
        assert [row['packetSequence'] for row in data] == [1, 2, 3, 4]
        assert data[2]['symbol'] == 'AB'

        metrics = client.metrics.to_dict()
        assert metrics['records_streamed'] == 3
        assert metrics['stream_outcome'] == 'timed_out'
        assert metrics['gaps_found'] == 1
        assert metrics['recovered'] == 1
        assert metrics['final_records'] == 4

    def test_closed_stream_with_no_records(self, feed_server, tmp_path):
        server = feed_server(stream_data=b'')
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert client.stream_result.outcome == StreamEnd.CLOSED
        assert len(store) == 0
        assert client.gap_report.missing == []
        assert server.resend_requests == []

        client.write(store)
        assert json.loads((tmp_path / 'output.json').read_text()) == []

    def test_abandoned_sequence_stays_absent(self, feed_server, tmp_path):
        server = feed_server(
            stream_data=make_frame(1) + make_frame(4),
            resend={2: make_frame(2), 3: HANG},
        )
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert server.resend_requests == [2, 3]
        assert store.sequences() == [1, 2, 4]
        assert client.metrics.recovered == 1
        assert client.metrics.abandoned == 1

    def test_partial_resend_reply_abandoned(self, feed_server, tmp_path):
        server = feed_server(
            stream_data=make_frame(2),
            resend={1: make_frame(1)[:10]},
        )
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert store.sequences() == [2]
        assert client.recovery_results[0].bytes_received == 10

    def test_duplicates_in_stream_last_write_wins(self, feed_server, tmp_path):
        server = feed_server(
            stream_data=make_frame(1, price=1) + make_frame(2) + make_frame(1, price=2),
        )
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert store.sequences() == [1, 2]
        assert store.get(1).price == 2
        assert client.metrics.overwrites == 1
        assert client.metrics.to_dict()['overwrites'] == 1

    def test_mismatched_and_out_of_range_resends_counted(self, feed_server, tmp_path):
        sequences = [seq for seq in range(1, 258) if seq not in (3, 256)]
        server = feed_server(
            stream_data=b''.join(make_frame(seq) for seq in sequences),
            resend={3: make_frame(300), 0: make_frame(256)},
        )
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert server.resend_requests == [3, 0]
        assert 3 not in store
        assert 256 in store
        assert 300 in store
        assert client.gap_report.beyond_resend_range == 1

        metrics = client.metrics.to_dict()
        assert metrics['gaps_found'] == 2
        assert metrics['recovered'] == 2
        assert metrics['mismatches'] == 1
        assert metrics['out_of_range_requests'] == 1
        assert metrics['final_records'] == len(sequences) + 2

    def test_trailing_fragment_discarded(self, feed_server, tmp_path):
        server = feed_server(stream_data=make_frame(1) + make_frame(2)[:9])
        client = FeedRecoveryClient(_config(server.port, tmp_path))

        store = client.run()

        assert store.sequences() == [1]
        assert client.stream_result.discarded_bytes == 9

    def test_initial_connect_failure_is_fatal(self, unused_port, tmp_path):
        client = FeedRecoveryClient(_config(unused_port, tmp_path))

        with pytest.raises(TransportSetupError):
            client.run()


class TestCli:
    """Exit status and artifact from the command line"""

    def test_success(self, feed_server, tmp_path):
        server = feed_server(
            stream_data=make_frame(1) + make_frame(3),
            resend={2: make_frame(2)},
        )
        output = tmp_path / 'result.json'

        status = main(['--port', str(server.port), '--timeout', str(TIMEOUT),
                       '--output', str(output)])

        assert status == 0
        data = json.loads(output.read_text())
        assert [row['packetSequence'] for row in data] == [1, 2, 3]

    def test_config_file_with_override(self, feed_server, tmp_path):
        server = feed_server(stream_data=make_frame(1))
        output = tmp_path / 'from_config.json'
        config = tmp_path / 'config.toml'
        config.write_text(
            f'[server]\nport = 1\n\n[client]\ntimeout_sec = {TIMEOUT}\n'
            f'output_file = "{output}"\n'
        )

        status = main(['--config', str(config), '--port', str(server.port)])

        assert status == 0
        assert json.loads(output.read_text())[0]['packetSequence'] == 1

    def test_connection_refused_exits_nonzero(self, unused_port, tmp_path):
        output = tmp_path / 'never.json'
        status = main(['--port', str(unused_port), '--output', str(output)])

        assert status == 1
        assert not output.exists()

    def test_bad_config_exits_nonzero(self, tmp_path):
        assert main(['--config', str(tmp_path / 'missing.toml')]) == 1

    @pytest.mark.parametrize('content', [
        '[server]\nhost = 5\n',
        'server = 1\n',
        '[server]\nport = true\n',
        'client = "fast"\n',
    ])
    def test_wrongly_typed_config_exits_nonzero(self, tmp_path, content):
        config = tmp_path / 'config.toml'
        config.write_text(content)

        assert main(['--config', str(config)]) == 1

    def test_unwritable_output_exits_nonzero(self, feed_server, tmp_path):
        server = feed_server(stream_data=make_frame(1))
        blocker = tmp_path / 'file'
        blocker.write_text('x')

        status = main(['--port', str(server.port), '--timeout', str(TIMEOUT),
                       '--output', str(blocker / 'out.json')])

        assert status == 1
