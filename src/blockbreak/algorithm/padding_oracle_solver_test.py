import random

import pytest

from blockbreak.algorithm.padding_oracle_solver import PaddingOracleSolver, guess_order, recover_plaintext
from blockbreak.blackbox import CBC_CHALLENGE_LINES, CbcPaddingOracle, deterministic_key
from blockbreak.errors import BadFinalPadding, MisalignedCiphertext, NoValidPadding
from blockbreak.oracle import FunctionPaddingOracle
from blockbreak.state_queue import SingleSlotQueue
from blockbreak.state_snapshot import SnapshotPublisher


@pytest.fixture
def oracle():
    return CbcPaddingOracle(key=deterministic_key(seed=999), rng=random.Random(1))


class TestGuessOrder:
    """Test suite for guess_order"""

    def test_trivial_guess_last(self):
        """Test that the guess equal to the padding value comes last"""
        order = guess_order(1)
        assert order[-1] == 1
        assert order[0] == 0

    def test_covers_every_byte(self):
        """Test that each byte value is tried exactly once"""
        assert sorted(guess_order(7)) == list(range(256))


class TestPaddingOracleSolver:
    """Test suite for the CBC padding oracle attack"""

    def test_solve_block(self, oracle):
        """Test recovering a single full block"""
        iv, ciphertext = oracle.encrypt(b"YELLOW SUBMARINE")
        solver = PaddingOracleSolver(oracle)

        result = solver.solve_block(iv, ciphertext[:16])

        assert result.p_bytes == b"YELLOW SUBMARINE"
        assert result.stats.confirmed_hits == 16
        assert result.stats.tries >= 16

    @pytest.mark.parametrize("line", CBC_CHALLENGE_LINES)
    def test_challenge_lines(self, oracle, line):
        """Test decrypting every challenge line"""
        iv, ciphertext = oracle.encrypt(line)
        assert recover_plaintext(iv, ciphertext, oracle) == line

    @pytest.mark.parametrize("length", [0, 1, 15, 16, 17, 47])
    def test_random_plaintexts(self, oracle, length):
        """Test plaintexts of arbitrary bytes, including ones ending in padding-like values"""
        plaintext = random.Random(length).randbytes(length)
        iv, ciphertext = oracle.encrypt(plaintext)
        assert recover_plaintext(iv, ciphertext, oracle) == plaintext

    @pytest.mark.parametrize("tail", [b"\x02", b"\x02\x02", b"\x03\x03\x03"])
    def test_plaintext_ending_in_padding_bytes(self, oracle, tail):
        """Test that padding-like plaintext bytes do not fool the last-byte guess"""
        plaintext = b"A" * (16 - len(tail)) + tail + b"B" * 16 + b"C" * (16 - len(tail)) + tail
        iv, ciphertext = oracle.encrypt(plaintext)
        assert recover_plaintext(iv, ciphertext, oracle) == plaintext

    def test_function_oracle(self, oracle):
        """Test the attack through a plain callable"""
        iv, ciphertext = oracle.encrypt(b"callable oracle")
        fn_oracle = FunctionPaddingOracle(oracle.padding_valid)
        assert recover_plaintext(iv, ciphertext, fn_oracle) == b"callable oracle"

    @pytest.mark.parametrize("iv,ciphertext", [
        (bytes(15), bytes(16)),
        (bytes(16), b""),
        (bytes(16), bytes(17)),
    ])
    def test_misaligned(self, oracle, iv, ciphertext):
        """Test that a bad IV or ciphertext length is rejected before any query"""
        with pytest.raises(MisalignedCiphertext):
            recover_plaintext(iv, ciphertext, oracle)

    def test_oracle_always_false(self):
        """Test that an oracle that never accepts gives NoValidPadding"""
        never = FunctionPaddingOracle(lambda iv, ciphertext: False)
        with pytest.raises(NoValidPadding):
            recover_plaintext(bytes(16), bytes(16), never)

    def test_oracle_always_true(self):
        """Test that an oracle that always accepts gives an unpaddable result"""
        always = FunctionPaddingOracle(lambda iv, ciphertext: True)
        with pytest.raises(BadFinalPadding):
            recover_plaintext(bytes(16), bytes(16), always)

    def test_queries_are_two_blocks(self, oracle):
        """Test that each oracle query carries one IV and one ciphertext block"""
        seen = set()

        def recording(iv, ciphertext):
            seen.add((len(iv), len(ciphertext)))
            return oracle.padding_valid(iv, ciphertext)

        iv, ciphertext = oracle.encrypt(b"x" * 40)
        recover_plaintext(iv, ciphertext, FunctionPaddingOracle(recording))
        assert seen == {(16, 16)}

    def test_publishes_final_snapshot(self, oracle):
        """Test that the last snapshot is complete with every block solved"""
        queue = SingleSlotQueue()
        publisher = SnapshotPublisher("cbc", queue)
        iv, ciphertext = oracle.encrypt(b"snapshot test, two blocks")

        recover_plaintext(iv, ciphertext, oracle, publisher=publisher)

        snapshot = queue.get(timeout=0)
        assert snapshot.complete
        assert len(snapshot.plaintext) == 2
        assert all(None not in block for block in snapshot.plaintext)
        assert snapshot.recovered.startswith(b"snapshot test, two blocks")
        assert queue.dropped > 0
