import unittest

from clockgen.cycles import check_no_loops, find_loops, successor_map
from clockgen.errors import GraphError
from clockgen.parser import parse_schematic

HEADER = """\
sys_clk_mux: pll_source_mux
flash_latency:
  path: flash.acr.latency
  ranges:
    any: {bit_value: 0}
"""

LOOPED = HEADER + """\
oscillators:
  hse: {frequency: 8000000}
multiplexers:
  pll_source_mux:
    path: rcc.cfgr.pllsrc
    inputs:
      hse: {bit_value: 0}
      pll_mul: {bit_value: 1}
    default: hse
dividers:
  pll_div: {input: pll_source_mux, default: 1}
multipliers:
  pll_mul: {input: pll_div, default: 2}
taps:
  tap1: {input: pll_mul, max: 1000000, terminal: true}
"""


class TestSuccessorMap(unittest.TestCase):
    def test_edges_follow_inputs(self):
        nxt = successor_map(parse_schematic(LOOPED))
        self.assertEqual(["pll_source_mux"], nxt["hse"])
        self.assertEqual(["pll_source_mux", "tap1"], nxt["pll_mul"])
        self.assertEqual([], nxt["tap1"])

    def test_off_is_not_a_node(self):
        sch = parse_schematic(LOOPED.replace("hse: {bit_value: 0}", "off: {bit_value: 0}"))
        self.assertNotIn("off", successor_map(sch))


class TestFindLoops(unittest.TestCase):
    def test_no_loops(self):
        sch = parse_schematic(LOOPED.replace("      pll_mul: {bit_value: 1}\n", ""))
        self.assertEqual([], find_loops(sch))
        check_no_loops(sch)

    def test_loop_starts_where_it_closes(self):
        self.assertEqual([["pll_source_mux", "pll_div", "pll_mul", "pll_source_mux"]],
                         find_loops(parse_schematic(LOOPED)))

    def test_self_loop(self):
        sch = parse_schematic(HEADER + "dividers:\n  d: {input: d, default: 1}\n")
        self.assertEqual([["d", "d"]], find_loops(sch))

    def test_loop_not_reachable_from_an_oscillator(self):
        text = LOOPED + "  x: {input: y, max: 1}\n  y: {input: x, max: 1}\n"
        loops = find_loops(parse_schematic(text))
        self.assertIn(["x", "y", "x"], loops)
        self.assertEqual(2, len(loops))

    def test_all_loops_are_reported(self):
        text = LOOPED + "  x: {input: y, max: 1}\n  y: {input: x, max: 1}\n"
        with self.assertRaises(GraphError) as cm:
            check_no_loops(parse_schematic(text))
        self.assertEqual(
            "Loop(s) detected: pll_source_mux -> pll_div -> pll_mul -> pll_source_mux, x -> y -> x",
            str(cm.exception))

    def test_report_is_deterministic(self):
        sch = parse_schematic(LOOPED)
        self.assertEqual(find_loops(sch), find_loops(sch))


if __name__ == "__main__":
    unittest.main()
