"""
Indian name and place dictionaries used for free-text entity recognition.
All entries are lowercase.
"""

FIRST_NAMES = {
    # Male names
    'aakash', 'aaditya', 'aamir', 'aarav', 'aarush', 'aaryan', 'aryan', 'aashish',
    'ashish', 'abhishek', 'aditya', 'ahmad', 'ahmed', 'ajay', 'akhil', 'akshay',
    'aman', 'amar', 'amit', 'amitabh', 'anand', 'ankit', 'anmol', 'anurag',
    'arjun', 'arman', 'arun', 'arvind', 'ashok', 'ashutosh', 'atul', 'avinash',
    'ayush', 'babu', 'badal', 'balaji', 'balbir', 'bharat', 'bhavesh', 'bheem',
    'bhola', 'bipin', 'brajesh', 'chandan', 'chandra', 'charan', 'chetan', 'daksh',
    'damodar', 'darshan', 'dashrath', 'deepak', 'dev', 'devansh', 'devendra',
    'dhananjay', 'dhiraj', 'dhruv', 'dilip', 'dinesh', 'ganesh', 'gaurav', 'gautam',
    'girish', 'gopal', 'govind', 'guddu', 'gulab', 'hari', 'harish', 'harsh',
    'hemant', 'hitesh', 'imran', 'ishan', 'jagdish', 'jai', 'jatin', 'jayant',
    'jignesh', 'jitendra', 'kailash', 'karan', 'karthik', 'kartik', 'keshav', 'kiran',
    'kishan', 'kishore', 'krishna', 'kunal', 'lakhan', 'lakshman', 'lalit', 'lokesh',
    'madhav', 'mahesh', 'manish', 'manoj', 'mohan', 'mohit', 'mukesh', 'mukul',
    'murali', 'nadeem', 'nagesh', 'nakul', 'naresh', 'narendra', 'narayan', 'naveen',
    'navin', 'neeraj', 'nikhil', 'nilesh', 'niranjan', 'nitesh', 'omkar', 'pankaj',
    'pappu', 'parth', 'pavan', 'piyush', 'pradeep', 'prakash', 'pramod', 'pranav',
    'prashant', 'pratap', 'prateek', 'pravin', 'prem', 'puneet', 'raghav', 'raghu',
    'rahul', 'rajan', 'rajat', 'rajeev', 'rajendra', 'rajesh', 'rajiv', 'raju',
    'rakesh', 'ramesh', 'ram', 'ranjit', 'ratan', 'ravi', 'ravindra', 'rishi',
    'rishabh', 'rohan', 'rohit', 'rupesh', 'sachin', 'sagar', 'sahil', 'salim',
    'samir', 'sameer', 'sandeep', 'sandip', 'sanjay', 'sanjiv', 'santosh', 'satish',
    'satya', 'saurabh', 'shankar', 'shashi', 'shiva', 'shubham', 'shyam', 'siddharth',
    'sohail', 'sonu', 'sourav', 'srinivas', 'subhash', 'sudhir', 'sumit', 'sunil',
    'suraj', 'suresh', 'surya', 'sushil', 'tarun', 'tejas', 'uday', 'umesh',
    'upendra', 'vaibhav', 'venkat', 'vicky', 'vijay', 'vikas', 'vikram', 'vinay',
    'vinod', 'vipin', 'virendra', 'vishal', 'vishnu', 'vivek', 'yash', 'yogesh',
    'yusuf',
    # Female names
    'aarti', 'aditi', 'aishwarya', 'amrita', 'ananya', 'anita', 'anjali', 'ankita',
    'anuradha', 'aparna', 'archana', 'ashwini', 'babita', 'bhavana', 'chandni',
    'deepa', 'deepika', 'divya', 'gauri', 'gayatri', 'geeta', 'gita', 'hema',
    'indira', 'jaya', 'jyoti', 'kajal', 'kalyani', 'kavita', 'khushi', 'kirti',
    'komal', 'lakshmi', 'lalita', 'madhuri', 'mamta', 'manisha', 'meena', 'megha',
    'nandini', 'neelam', 'neha', 'nisha', 'pallavi', 'payal', 'pooja', 'poonam',
    'priya', 'priyanka', 'radha', 'radhika', 'rekha', 'ritu', 'sakshi', 'sangita',
    'sarita', 'seema', 'shalini', 'sheetal', 'shilpa', 'shreya', 'shruti', 'simran',
    'sita', 'sneha', 'sonam', 'sonia', 'sudha', 'sunita', 'swati', 'tanvi', 'uma',
    'usha', 'vandana', 'varsha', 'vidya', 'yamini',
}

SURNAMES = {
    'agarwal', 'aggarwal', 'agrawal', 'ahmed', 'ahuja', 'ansari', 'arora', 'bajaj',
    'banerjee', 'bansal', 'bhat', 'bhatia', 'bhatt', 'bose', 'chakraborty', 'chauhan',
    'chaudhary', 'chopra', 'choudhary', 'das', 'datta', 'desai', 'dubey', 'dutta',
    'ghosh', 'gill', 'goswami', 'goud', 'goyal', 'gupta', 'iyer', 'jadhav', 'jain',
    'jaiswal', 'jha', 'joshi', 'kapoor', 'kaur', 'khan', 'khanna', 'kulkarni',
    'kumar', 'kumari', 'malhotra', 'malik', 'mehta', 'menon', 'mishra', 'mittal',
    'mukherjee', 'naidu', 'naik', 'nair', 'pandey', 'patel', 'pathak', 'patil',
    'pillai', 'prasad', 'qureshi', 'rao', 'rathod', 'rathore', 'rawat', 'reddy',
    'roy', 'saha', 'saini', 'saxena', 'sen', 'sethi', 'shah', 'sharma', 'shaikh',
    'shetty', 'shukla', 'siddiqui', 'singh', 'sinha', 'soni', 'srivastava', 'thakur',
    'tiwari', 'tripathi', 'trivedi', 'tyagi', 'varma', 'verma', 'yadav',
}

CITIES = {
    # Metro cities
    'mumbai', 'delhi', 'new delhi', 'bangalore', 'bengaluru', 'chennai', 'kolkata',
    'hyderabad', 'secunderabad', 'pune', 'ahmedabad',
    # State capitals
    'bhopal', 'bhubaneswar', 'chandigarh', 'dehradun', 'gangtok', 'imphal', 'jaipur',
    'kohima', 'lucknow', 'panaji', 'patna', 'raipur', 'ranchi', 'shillong', 'shimla',
    'srinagar', 'thiruvananthapuram', 'amaravati',
    # Major cities
    'agra', 'ajmer', 'aligarh', 'allahabad', 'prayagraj', 'amritsar', 'aurangabad',
    'bareilly', 'coimbatore', 'cuttack', 'dhanbad', 'faridabad', 'ghaziabad',
    'gorakhpur', 'guntur', 'gurgaon', 'gurugram', 'guwahati', 'gwalior', 'howrah',
    'hubli', 'indore', 'jabalpur', 'jalandhar', 'jamshedpur', 'jodhpur', 'kakinada',
    'kanpur', 'karimnagar', 'khammam', 'kochi', 'kota', 'kozhikode', 'kurnool',
    'ludhiana', 'madurai', 'mangalore', 'meerut', 'mysore', 'nagpur', 'nalgonda',
    'nashik', 'nellore', 'nizamabad', 'noida', 'rajkot', 'salem', 'siliguri',
    'solapur', 'surat', 'thane', 'tirupati', 'udaipur', 'vadodara', 'varanasi',
    'vijayawada', 'visakhapatnam', 'vizag', 'warangal',
    # Union territory capitals
    'port blair', 'puducherry', 'pondicherry', 'kavaratti', 'leh',
}

# Indian States and Union Territories
STATES = {
    'andhra pradesh', 'arunachal pradesh', 'assam', 'bihar', 'chhattisgarh', 'goa',
    'gujarat', 'haryana', 'himachal pradesh', 'jharkhand', 'karnataka', 'kerala',
    'madhya pradesh', 'maharashtra', 'manipur', 'meghalaya', 'mizoram', 'nagaland',
    'odisha', 'orissa', 'punjab', 'rajasthan', 'sikkim', 'tamil nadu', 'telangana',
    'tripura', 'uttar pradesh', 'uttarakhand', 'west bengal',
    # Union Territories
    'andaman and nicobar islands', 'chandigarh', 'dadra and nagar haveli',
    'daman and diu', 'delhi', 'jammu and kashmir', 'ladakh', 'lakshadweep',
    'puducherry',
}

# Query words that must never be read as part of a name
FORBIDDEN_NAME_WORDS = {
    # Query words
    'find', 'search', 'look', 'show', 'get', 'list', 'all', 'any', 'who', 'what',
    'where', 'when', 'how', 'having', 'with', 'from', 'connected', 'linked',
    'related', 'relation', 'phone', 'mobile', 'email', 'address', 'location', 'city',
    'state', 'country', 'company', 'bank', 'account',
    # Common function words
    'and', 'or', 'the', 'a', 'an', 'this', 'that', 'these', 'those', 'is', 'are',
    'was', 'were', 'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did',
    'will', 'would', 'could', 'should', 'may', 'might', 'must', 'can', 'to', 'of',
    'in', 'for', 'on', 'by', 'about', 'like', 'through', 'over', 'before', 'after',
    'between', 'under', 'at', 'near',
    # Entity type words
    'person', 'people', 'man', 'woman', 'boy', 'girl', 'individual', 'suspect',
    'accused', 'victim', 'witness', 'transaction', 'record', 'records', 'data',
    'information', 'details', 'number', 'type', 'status', 'date', 'amount',
    'balance', 'credit', 'debit', 'transfer', 'payment',
    # Relationship indicators
    'relationship', 'relationships', 'types', 'connections', 'connection',
    'associated',
}

# Honorifics and relation markers stripped before comparing names
NAME_PREFIXES = {
    'mr', 'mrs', 'ms', 'miss', 'dr', 'shri', 'sri', 'smt', 'late',
    's/o', 'd/o', 'w/o', 'c/o', 'so', 'do', 'wo', 'co',
}

LOCATIONS = CITIES | STATES
