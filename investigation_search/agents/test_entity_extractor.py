import unittest

from investigation_search.agents.entity_extractor import (
    EntityExtractor,
    EntityType,
    Priority,
    RegexStrategy,
    HybridStrategy,
    get_strategy,
    normalize_amount,
    normalize_date,
    normalize_phone,
)


class TestNormalizers(unittest.TestCase):

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone("+91 98765-43210"), "9876543210")
        self.assertEqual(normalize_phone("9876543210"), "9876543210")
        self.assertEqual(normalize_phone("091-9876543210"), "9876543210")
        # Landline stays as generic digits
        self.assertEqual(normalize_phone("040-23456789"), "04023456789")
        # Too short or too long is not a phone, and not an error
        self.assertIsNone(normalize_phone("12345"))
        self.assertIsNone(normalize_phone("1234567890123456"))
        self.assertIsNone(normalize_phone(""))

    def test_normalize_amount(self):
        self.assertEqual(normalize_amount("Rs. 1,50,000"), "150000")
        self.assertEqual(normalize_amount("5 lakh"), "500000")
        self.assertEqual(normalize_amount("2.5 crore"), "25000000")
        # Pincode and phone shapes, and noise
        self.assertIsNone(normalize_amount("Rs 500081"))
        self.assertIsNone(normalize_amount("Rs 9876543210"))
        self.assertIsNone(normalize_amount("Rs 50"))

    def test_grouped_amounts_in_pincode_range(self):
        self.assertEqual(normalize_amount("₹ 3,00,000"), "300000")
        self.assertEqual(normalize_amount("Rs. 9,50,000"), "950000")
        # Without separators the same figure reads as a pincode
        self.assertIsNone(normalize_amount("Rs 250000"))

    def test_normalize_date(self):
        self.assertEqual(normalize_date("15/08/2023"), "2023-08-15")
        self.assertEqual(normalize_date("1st January 2024"), "2024-01-01")
        self.assertEqual(normalize_date("2024-03-05"), "2024-03-05")


class TestRegexExtraction(unittest.TestCase):

    def setUp(self):
        self.extractor = EntityExtractor(strategy=RegexStrategy())

    def values(self, text, entity_type):
        return [e.value for e in self.extractor.extract(text).by_type(entity_type)]

    def test_phone_with_country_code(self):
        result = self.extractor.extract("call +91 98765-43210 now")
        phones = result.by_type(EntityType.PHONE)
        self.assertEqual(len(phones), 1)
        self.assertEqual(phones[0].normalized_value, "9876543210")
        self.assertEqual(phones[0].original_text, "+91 98765-43210")
        self.assertEqual(phones[0].priority, Priority.HIGH)

    def test_email_claims_span(self):
        result = self.extractor.extract("contact rahul.sharma@gmail.com")
        self.assertEqual(self.values("contact rahul.sharma@gmail.com", EntityType.EMAIL), ["rahul.sharma@gmail.com"])
        # The name inside the address must not be read as a person
        self.assertEqual(result.by_type(EntityType.NAME), [])

    def test_identity_documents(self):
        self.assertEqual(self.values("PAN ABCPE1234F", EntityType.PAN_NUMBER), ["ABCPE1234F"])
        self.assertEqual(self.values("vehicle TS 09 EA 1234", EntityType.VEHICLE_NUMBER), ["TS09EA1234"])
        self.assertEqual(self.values("IFSC SBIN0001234", EntityType.IFSC_CODE), ["SBIN0001234"])
        self.assertEqual(self.values("from 192.168.1.10", EntityType.IP_ADDRESS), ["192.168.1.10"])

    def test_account_needs_keyword(self):
        self.assertEqual(self.values("transferred to 123456789012 yesterday", EntityType.ACCOUNT_NUMBER), [])
        self.assertEqual(self.values("account: 123456789012", EntityType.ACCOUNT_NUMBER), ["123456789012"])

    def test_account_keyword_wins_over_phone(self):
        result = self.extractor.extract("a/c no 9876543210")
        self.assertEqual([e.value for e in result.by_type(EntityType.ACCOUNT_NUMBER)], ["9876543210"])
        self.assertEqual(result.by_type(EntityType.PHONE), [])

    def test_aadhaar_needs_keyword(self):
        self.assertEqual(self.values("id 2345 6789 0123", EntityType.AADHAAR_NUMBER), [])
        self.assertEqual(self.values("aadhaar 2345 6789 0123", EntityType.AADHAAR_NUMBER), ["234567890123"])
        # Aadhaar numbers never start with 0 or 1
        self.assertEqual(self.values("aadhaar 1234 5678 9012", EntityType.AADHAAR_NUMBER), [])

    def test_amounts(self):
        result = self.extractor.extract("paid Rs. 50,000 and 5 lakh")
        self.assertEqual(sorted(e.normalized_value for e in result.by_type(EntityType.AMOUNT)), ["50000", "500000"])

    def test_query_entities(self):
        result = self.extractor.extract("rahul sharma from delhi with phone 9876543210")
        self.assertEqual([e.value for e in result.by_type(EntityType.NAME)], ["Rahul Sharma"])
        self.assertEqual([e.value for e in result.by_type(EntityType.LOCATION)], ["Delhi"])
        self.assertEqual([e.value for e in result.by_type(EntityType.PHONE)], ["9876543210"])
        # Ordered by position in the text
        self.assertEqual(
            [e.entity_type for e in result.entities],
            [EntityType.NAME, EntityType.LOCATION, EntityType.PHONE],
        )

    def test_longest_place_wins(self):
        self.assertEqual(self.values("resident of new delhi", EntityType.LOCATION), ["New Delhi"])

    def test_name_phone_contact_relationship(self):
        result = self.extractor.extract("rahul sharma 9876543210")
        contacts = [r for r in result.relationships if r.relationship_type == 'contact']
        self.assertEqual(len(contacts), 1)
        self.assertEqual(contacts[0].source.value, "Rahul Sharma")
        self.assertEqual(contacts[0].target.value, "9876543210")

    def test_non_text_input(self):
        with self.assertRaises(TypeError):
            self.extractor.extract(None)
        with self.assertRaises(TypeError):
            self.extractor.extract(9876543210)

    def test_empty_text(self):
        result = self.extractor.extract("")
        self.assertEqual(result.entities, [])
        self.assertEqual(result.relationships, [])


class TestStrategies(unittest.TestCase):

    def test_get_strategy(self):
        self.assertIsInstance(get_strategy("regex"), RegexStrategy)
        self.assertIsInstance(get_strategy("HYBRID"), HybridStrategy)
        with self.assertRaises(ValueError):
            get_strategy("llm")

    def test_hybrid_matches_misspelt_place(self):
        result = EntityExtractor(strategy=HybridStrategy()).extract("shop near hyderbad")
        self.assertIn("hyderabad", [e.normalized_value for e in result.by_type(EntityType.LOCATION)])

    def test_strategy_reported(self):
        self.assertEqual(EntityExtractor.from_name("regex").extract("x").strategy, "regex")

    def test_deduplicate_keeps_most_confident(self):
        result = EntityExtractor(strategy=RegexStrategy()).extract("9876543210 or 98765 43210")
        phones = result.by_type(EntityType.PHONE)
        self.assertEqual(len(phones), 1)


if __name__ == '__main__':
    unittest.main()
