from docflow.services.extraction.locator import find_field_location, normalize_text
from docflow.services.models import OcrPage, OcrWord


def _line(texts, y=100.0, page=1):
    words = []
    x = 10.0
    for text in texts:
        width = 10.0 * len(text)
        words.append(OcrWord(text=text, bbox=(x, y, width, 12.0)))
        x += width + 5.0
    return OcrPage(page=page, text=" ".join(texts), words=tuple(words))


def test_normalize_text():
    assert normalize_text("$1,234.56") == "123456"
    assert normalize_text("Jane  Doe!") == "jane  doe"


def test_amount_matches_as_multi_word_span():
    page = _line(["Final", "Balance", ":", "$1,234.56"])
    page_number, bbox = find_field_location("1234.56", [page])

    first, last = page.words[0], page.words[-1]
    assert page_number == 1
    assert bbox == (first.bbox[0], 100.0, last.bbox[0] + last.bbox[2] - first.bbox[0], 12.0)


def test_exact_word_match_ignores_punctuation():
    page = _line(["PX-99821", "issued", "today"])
    assert find_field_location("PX99821", [page]) == (1, page.words[0].bbox)


def test_earlier_span_containing_value_wins_over_later_word():
    page = _line(["Policy", "Number", "PX-99821"])
    first, last = page.words[0], page.words[2]
    page_number, bbox = find_field_location("PX99821", [page])
    assert page_number == 1
    assert bbox[0] == first.bbox[0]
    assert bbox[2] == last.bbox[0] + last.bbox[2] - first.bbox[0]


def test_later_page_and_first_list_element():
    pages = [_line(["Cover", "sheet"]), _line(["Umbrella", "Coverage"], page=2)]
    page_number, bbox = find_field_location(["Umbrella", "Auto"], pages)
    assert page_number == 2
    assert bbox == pages[1].words[0].bbox


def test_integer_valued_float_and_boolean():
    page = _line(["Total", "5000", "true"])
    assert find_field_location(5000.0, [page]) == (1, page.words[1].bbox)
    assert find_field_location(True, [page]) == (1, page.words[2].bbox)


def test_unsearchable_values():
    page = _line(["A", "B", "C"])
    assert find_field_location("A", [page]) == (None, None)
    assert find_field_location(None, [page]) == (None, None)
    assert find_field_location("anything", None) == (None, None)
    assert find_field_location("Nowhere to be found", [page]) == (None, None)
    assert find_field_location([], [page]) == (None, None)
