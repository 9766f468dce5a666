import unittest
from unittest.mock import patch

from speccheck.base.errors import ErrorCode, SpeccheckError
from speccheck.toolkit.diagnostics import check_missing_tools, get_install_hint, require_tools


class TestToolDiagnostics(unittest.TestCase):
    def test_missing_tool_detection(self):
        """Verify check_missing_tools identifies missing binaries and provides hints."""
        installed = {"dmesg"}

        with patch("speccheck.toolkit.diagnostics.find_binary",
                   side_effect=lambda name, paths=(): f"/usr/bin/{name}" if name in installed else None):
            # 1. Required tools by default
            issues = check_missing_tools()
            self.assertEqual(len(issues), 1)
            self.assertEqual(issues[0].tool_name, "rpm")
            self.assertEqual(issues[0].message, "'rpm' command is required, but not installed. Exiting.")
            self.assertEqual(issues[0].install_hint, "yum install rpm")

            # 2. Installed tool
            self.assertEqual(check_missing_tools(["dmesg"]), [])

            # 3. Mixed
            issues = check_missing_tools(["dmesg", "lsmod"])
            self.assertEqual([i.tool_name for i in issues], ["lsmod"])
            self.assertEqual(issues[0].install_hint, "yum install kmod")

    def test_require_tools_raises(self):
        with patch("speccheck.toolkit.diagnostics.find_binary", return_value=None):
            with self.assertRaises(SpeccheckError) as ctx:
                require_tools(["rpm"])
        self.assertEqual(ctx.exception.code, ErrorCode.TOOL_NOT_INSTALLED)
        self.assertEqual(ctx.exception.details["tool"], "rpm")

    def test_install_hint_for_unknown_tool(self):
        self.assertEqual(get_install_hint("frobnicate"), "Please install 'frobnicate' manually.")


if __name__ == '__main__':
    unittest.main()
