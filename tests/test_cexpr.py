import os
import sys
import unittest


REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
sys.path.insert(0, SRC_ROOT)


from brogen.model.bro_cexpr import evaluate_c_constant  # noqa: E402


class ConstantEvaluatorTests(unittest.TestCase):
    def test_integer_arithmetic(self) -> None:
        self.assertEqual(evaluate_c_constant("1 << 4"), "16")
        self.assertEqual(evaluate_c_constant("4 * 16;"), "64")
        self.assertEqual(evaluate_c_constant("0x10UL | 1"), "17")
        self.assertEqual(evaluate_c_constant("010"), "8")
        self.assertEqual(evaluate_c_constant("~0"), "-1")

    def test_casts_and_suffixes(self) -> None:
        self.assertEqual(evaluate_c_constant("(NSInteger)-1"), "-1")
        self.assertEqual(evaluate_c_constant("1.5f * 2"), "3.0")
        self.assertEqual(evaluate_c_constant("'A'"), "65")

    def test_division_truncates_toward_zero(self) -> None:
        self.assertEqual(evaluate_c_constant("7 / 2"), "3")
        self.assertEqual(evaluate_c_constant("-7 / 2"), "-3")

    def test_remainder_keeps_dividend_sign(self) -> None:
        self.assertEqual(evaluate_c_constant("7 % 2"), "1")
        self.assertEqual(evaluate_c_constant("-7 % 2"), "-1")
        self.assertEqual(evaluate_c_constant("7 % -2"), "1")

    def test_rejects_non_constant_expressions(self) -> None:
        for expr in ("foo + 1", "compute(1)", "1 / 0", "5 % 0", "5.5 % 2", "1.0 / 0", "", "__import__('os')"):
            with self.subTest(expr=expr):
                with self.assertRaises(ValueError):
                    evaluate_c_constant(expr)


if __name__ == "__main__":
    unittest.main()
