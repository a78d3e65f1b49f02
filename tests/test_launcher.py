import webbrowser

from checkout_service.launcher import PaymentSessionLauncher


class Browser:
    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.opened = []

    def open(self, url, new=0, autoraise=True):
        self.opened.append((url, new))
        if self.error:
            raise self.error
        return self.result


def test_opens_in_new_tab():
    navigated = []
    browser = Browser()
    launcher = PaymentSessionLauncher(fallback=navigated.append, browser=browser)

    assert launcher.open("https://pay.example.test/1") is True
    assert browser.opened == [("https://pay.example.test/1", 2)]
    assert navigated == []


def test_falls_back_when_tab_is_refused():
    navigated = []
    launcher = PaymentSessionLauncher(fallback=navigated.append, browser=Browser(result=False))

    assert launcher.open("https://pay.example.test/1") is False
    assert navigated == ["https://pay.example.test/1"]


def test_falls_back_when_browser_errors():
    navigated = []
    browser = Browser(error=webbrowser.Error("blocked"))
    launcher = PaymentSessionLauncher(fallback=navigated.append, browser=browser)

    assert launcher.open("https://pay.example.test/1") is False
    assert navigated == ["https://pay.example.test/1"]


def test_falls_back_when_no_browser_available(monkeypatch):
    def no_browser(using=None):
        raise webbrowser.Error("could not locate runnable browser")

    monkeypatch.setattr(webbrowser, "get", no_browser)
    navigated = []
    launcher = PaymentSessionLauncher(fallback=navigated.append)

    assert launcher.open("https://pay.example.test/1") is False
    assert navigated == ["https://pay.example.test/1"]
