"""
Unit Tests for Session Analysis extraction
"""

from study_buddy.session_analysis import extract_session_analysis


class TestExtractSessionAnalysis:
    """Test suite for extract_session_analysis."""

    def test_block_removed_and_parsed(self):
        raw = (
            "Bilkul sahi ji! Photosynthesis mein light energy use hoti hai.\n"
            '[ANALYSIS]{"understanding":"good","topics":["Photosynthesis"],'
            '"weakAreas":["Chlorophyll"],"strongAreas":["Light reaction"]}[/ANALYSIS]'
        )

        visible, analysis = extract_session_analysis(raw)

        assert visible == "Bilkul sahi ji! Photosynthesis mein light energy use hoti hai."
        assert analysis.understanding == "good"
        assert analysis.topics == ["Photosynthesis"]
        assert analysis.to_response() == {
            "understanding": "good",
            "topics": ["Photosynthesis"],
            "weakAreas": ["Chlorophyll"],
            "strongAreas": ["Light reaction"],
        }

    def test_block_spanning_lines(self):
        raw = 'Achha ji.\n[ANALYSIS]\n{"understanding": "weak",\n "topics": []}\n[/ANALYSIS]\n'

        visible, analysis = extract_session_analysis(raw)

        assert visible == "Achha ji."
        assert analysis.understanding == "weak"
        assert analysis.weak_areas == []

    def test_level_case_normalized(self):
        _, analysis = extract_session_analysis('Hi [ANALYSIS]{"understanding":" Excellent "}[/ANALYSIS]')

        assert analysis.understanding == "excellent"

    def test_no_block(self):
        visible, analysis = extract_session_analysis("Dekhiye, yeh simple hai.")

        assert visible == "Dekhiye, yeh simple hai."
        assert analysis is None

    def test_malformed_json_leaves_reply_untouched(self):
        raw = "Samjhiye ji. [ANALYSIS]{understanding: good[/ANALYSIS]"

        visible, analysis = extract_session_analysis(raw)

        assert visible == raw
        assert analysis is None

    def test_unknown_level_rejected(self):
        raw = 'Samjhiye ji. [ANALYSIS]{"understanding":"brilliant"}[/ANALYSIS]'

        visible, analysis = extract_session_analysis(raw)

        assert visible == raw
        assert analysis is None
