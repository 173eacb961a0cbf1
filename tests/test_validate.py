import unittest
from pathlib import Path

from clockgen.catalog import RegisterCatalog
from clockgen.errors import (CatalogLookupError, GraphError, NamingError, SizeError,
                             UnresolvedReferenceError)
from clockgen.parser import parse_schematic
from clockgen.schematic import OFF
from clockgen.validate import (check_defaults_exist, field_references, load_schematic,
                               load_schematic_file, validate_schematic)

DATA = Path(__file__).parent / "data"

HEADER = """\
sys_clk_mux: pll_source_mux
flash_latency:
  path: flash.acr.latency
  ranges:
    zero_wait: {max: 24000000, bit_value: 0}
    one_wait: {min: 24000001, bit_value: 1}
"""

HSE = """\
oscillators:
  hse: {frequency: 8000000}
"""

PLL_SOURCE_MUX = """\
multiplexers:
  pll_source_mux:
    path: rcc.cfgr.pllsrc
    inputs:
      hse: {bit_value: 1}
    default: hse
"""

PLL_DIV = """\
dividers:
  pll_div: {input: pll_source_mux, default: 1}
"""

PLL_MUL = """\
multipliers:
  pll_mul:
    input: pll_div
    path: rcc.cfgr.pllmul
    values:
      no_mul: {factor: 2, bit_value: 1}
    default: 2
"""

TAP1 = """\
taps:
  tap1: {input: pll_mul, max: 1000000, terminal: true}
"""

VALID_CHAIN = HEADER + HSE + PLL_SOURCE_MUX + PLL_DIV + PLL_MUL + TAP1


class TestScenarios(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.catalog = RegisterCatalog.from_file(DATA / "arm_device.svd")

    def test_valid_chain(self):
        sch = load_schematic(VALID_CHAIN, self.catalog)
        self.assertEqual(["tap1"], [n for n, t in sch.taps.items() if t.terminal])
        self.assertEqual(16000000, sch.default_frequencies()["tap1"])

    def test_bad_field_reference(self):
        text = VALID_CHAIN.replace("path: rcc.cfgr.pllmul", "path: bogus.field")
        with self.assertRaises(CatalogLookupError) as cm:
            load_schematic(text, self.catalog)
        self.assertEqual("No field named 'bogus.field' in SVD spec", str(cm.exception))
        self.assertIsInstance(cm.exception, UnresolvedReferenceError)

    def test_bad_field_reference_is_ignored_without_catalog(self):
        load_schematic(VALID_CHAIN.replace("path: rcc.cfgr.pllmul", "path: bogus.field"))

    def test_oversized_bit_value(self):
        divider = """\
dividers:
  pll_div:
    input: pll_source_mux
    path: timer0.cr.mode
    values:
      div1: {divisor: 1, bit_value: 15}
    default: 1
"""
        text = HEADER + HSE + PLL_SOURCE_MUX + divider + PLL_MUL + TAP1
        with self.assertRaises(SizeError) as cm:
            load_schematic(text, self.catalog)
        self.assertIn("Bit value '15' does not fit in 3-bit field 'timer0.cr.mode' (pll_div)",
                      str(cm.exception))
        self.assertEqual((15, 3, "pll_div"), (cm.exception.value, cm.exception.width, cm.exception.component))

    def test_unused_output(self):
        with self.assertRaises(UnresolvedReferenceError) as cm:
            load_schematic(HEADER + HSE)
        self.assertEqual("Unused outputs: hse (maybe these are non-terminal taps?)", str(cm.exception))

    def test_induced_cycle(self):
        mux = PLL_SOURCE_MUX.replace("      hse: {bit_value: 1}\n",
                                     "      hse: {bit_value: 0}\n      pll_mul: {bit_value: 1}\n")
        text = HEADER + HSE + mux + PLL_DIV + PLL_MUL + TAP1
        with self.assertRaises(GraphError) as cm:
            load_schematic(text, self.catalog)
        self.assertEqual("Loop(s) detected: pll_source_mux -> pll_div -> pll_mul -> pll_source_mux",
                         str(cm.exception))


class TestChecks(unittest.TestCase):
    def assertRejected(self, text, error, message):
        with self.assertRaises(error) as cm:
            load_schematic(text)
        self.assertEqual(message, str(cm.exception))

    def test_invalid_character(self):
        text = VALID_CHAIN.replace("tap1:", "Tap1:")
        self.assertRejected(text, NamingError, "Name 'Tap1' contains invalid character: 'T'")

    def test_invalid_character_in_input(self):
        text = VALID_CHAIN.replace("input: pll_div", "input: pll-div")
        self.assertRejected(text, NamingError, "Name 'pll-div' contains invalid character: '-'")

    def test_off_is_reserved(self):
        text = HEADER + "oscillators:\n  off: {frequency: 1}\n"
        with self.assertRaises(NamingError):
            load_schematic(text)

    def test_duplicate_name(self):
        text = VALID_CHAIN + "  hse: {input: pll_mul, max: 1}\n"
        self.assertRejected(text, NamingError, "Duplicate name: hse")

    def test_nonexistent_input(self):
        text = VALID_CHAIN + "  tap2: {input: ghost, max: 1, terminal: true}\n"
        self.assertRejected(text, UnresolvedReferenceError,
                            "Nonexistent inputs: ghost (maybe these are terminal taps?)")

    def test_terminal_tap_is_not_an_input(self):
        text = VALID_CHAIN + "  tap2: {input: tap1, max: 1, terminal: true}\n"
        self.assertRejected(text, UnresolvedReferenceError,
                            "Nonexistent inputs: tap1 (maybe these are terminal taps?)")

    def test_unused_non_terminal_tap(self):
        text = VALID_CHAIN + "  tap2: {input: pll_mul, max: 1}\n"
        self.assertRejected(text, UnresolvedReferenceError,
                            "Unused outputs: tap2 (maybe these are non-terminal taps?)")

    def test_off_input_needs_no_declaration(self):
        text = VALID_CHAIN.replace("      hse: {bit_value: 1}\n",
                                   "      hse: {bit_value: 1}\n      off: {bit_value: 0}\n")
        sch = load_schematic(text)
        self.assertIn(OFF, sch.multiplexers["pll_source_mux"].inputs)

    def test_mux_default_not_an_input(self):
        text = VALID_CHAIN.replace("default: hse", "default: hsi")
        self.assertRejected(text, UnresolvedReferenceError,
                            "Multiplexers have default inputs not in their input lists: pll_source_mux")

    def test_multiplier_default_not_a_value(self):
        text = VALID_CHAIN.replace("    default: 2\n", "    default: 3\n")
        self.assertRejected(text, UnresolvedReferenceError,
                            "Multipliers have default values not in their value lists: pll_mul")

    def test_divider_defaults_not_values(self):
        dividers = """\
dividers:
  pll_div:
    input: pll_source_mux
    path: rcc.cfgr.hpre
    values:
      div1: {divisor: 1, bit_value: 0}
    default: 2
  apb_div:
    input: pll_source_mux
    path: rcc.cfgr.hpre
    values:
      div2: {divisor: 2, bit_value: 8}
    default: 4
  hse_div: {input: hse, default: 7}
"""
        taps = ("  apb: {input: apb_div, max: 1, terminal: true}\n"
                "  hse_out: {input: hse_div, max: 1, terminal: true}\n")
        text = HEADER + HSE + PLL_SOURCE_MUX + dividers + PLL_MUL + TAP1 + taps
        self.assertRejected(text, UnresolvedReferenceError,
                            "Dividers have default values not in their value lists: apb_div, pll_div")

    def test_values_without_path(self):
        text = VALID_CHAIN.replace("    path: rcc.cfgr.pllmul\n", "")
        self.assertRejected(text, UnresolvedReferenceError,
                            "Multipliers have selectable values but no field path: pll_mul")

    def test_fixed_ratio_default_is_free(self):
        sch = parse_schematic(VALID_CHAIN.replace("{input: pll_source_mux, default: 1}",
                                                  "{input: pll_source_mux, default: 3}"))
        check_defaults_exist(sch)
        self.assertAlmostEqual(16000000 / 3, sch.default_frequencies()["tap1"])

    def test_first_failure_wins(self):
        text = VALID_CHAIN.replace("tap1:", "Tap1:").replace("default: hse", "default: hsi")
        with self.assertRaises(NamingError):
            load_schematic(text)


class TestValidation(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.catalog = RegisterCatalog.from_file(DATA / "arm_device.svd")

    def test_full_example(self):
        sch = load_schematic_file(DATA / "stm32f1_clocks.yaml", self.catalog)
        self.assertEqual("sys_clk_mux", sch.sys_clk_mux_component.name)

    def test_idempotent(self):
        sch = load_schematic_file(DATA / "stm32f1_clocks.yaml", self.catalog)
        self.assertIs(sch, validate_schematic(sch, self.catalog))
        self.assertIs(sch, validate_schematic(sch, self.catalog))

    def test_referential_closure(self):
        sch = load_schematic_file(DATA / "stm32f1_clocks.yaml", self.catalog)
        outputs = set(sch.list_outputs())
        for name in sch.list_inputs():
            self.assertTrue(name == OFF or name in outputs, name)
        for path, _ in field_references(sch):
            self.assertIsNotNone(self.catalog.try_get_field(path), path)

    def test_pll_fields_are_checked(self):
        text = (DATA / "stm32f1_clocks.yaml").read_text().replace("rcc.cr.pllrdy", "rcc.cr.pllready")
        with self.assertRaises(CatalogLookupError) as cm:
            load_schematic(text, self.catalog)
        self.assertEqual("rcc.cr.pllready", cm.exception.path)

    def test_flash_latency_values_are_checked(self):
        text = (DATA / "stm32f1_clocks.yaml").read_text().replace("48000001, bit_value: 2", "48000001, bit_value: 8")
        with self.assertRaises(SizeError) as cm:
            load_schematic(text, self.catalog)
        self.assertEqual("flash_latency", cm.exception.component)


if __name__ == "__main__":
    unittest.main()
