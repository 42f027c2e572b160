from linkpeek.browser.classifier import BrowserInfo, detect_browser, detect_webview

__all__ = ["BrowserInfo", "detect_browser", "detect_webview"]
